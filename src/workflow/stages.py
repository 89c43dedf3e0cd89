# src/workflow/stages.py
"""
Stage registry: one entry per workflow screen, in programme order.

Each stage names its backend table, its step number N (the table carries
``planned_N`` / ``actual_N``), the column used to address a row on write,
and the fields the edit dialog writes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from src.workflow import records

DEFAULT_FILTERS: Tuple[str, ...] = ("reg_id", "village", "block", "district", "pump_capacity", "ip_name")

TEXT = "text"
DATE = "date"
STATUS = "status"
AMOUNT = "amount"
NUMBER = "number"
BOOL = "bool"
FILE = "file"
FIELD_KINDS = (TEXT, DATE, STATUS, AMOUNT, NUMBER, BOOL, FILE)

ALWAYS = "always"
ONCE = "once"


@dataclass(frozen=True)
class Field:
    name: str
    label: str
    kind: str = TEXT
    default: Optional[str] = None
    storage_prefix: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind not in FIELD_KINDS:
            raise ValueError(f"Unknown field kind {self.kind!r} for {self.name}")
        if self.kind == FILE and not self.storage_prefix:
            raise ValueError(f"File field {self.name} needs a storage_prefix")


# (stage, item, values) -> extra columns derived from what is being written
Computed = Callable[["Stage", Mapping[str, Any], Mapping[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class Stage:
    key: str
    title: str
    step: int
    table: str
    fields: Tuple[Field, ...]
    match_column: str = "id"
    actual_policy: str = ALWAYS
    actual_from: Optional[str] = None   # form field that supplies actual_N, else now
    upsert: bool = False
    portal_driven: bool = False
    touch_updated_at: bool = False
    filter_fields: Tuple[str, ...] = DEFAULT_FILTERS
    extra_columns: Tuple[str, ...] = ()
    computed: Optional[Computed] = None
    duplicate_message: Optional[str] = None
    page: Optional[str] = None

    @property
    def planned_column(self) -> str:
        return f"planned_{self.step}"

    @property
    def actual_column(self) -> str:
        return f"actual_{self.step}"

    @property
    def page_title(self) -> str:
        return self.page or self.title

    def get_field(self, name: str) -> Field:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)

    @property
    def file_fields(self) -> List[Field]:
        return [f for f in self.fields if f.kind == FILE]

    def describe(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "title": self.title,
            "step": self.step,
            "table": self.table,
            "page": self.page_title,
            "match_column": self.match_column,
            "actual_policy": self.actual_policy,
            "upsert": self.upsert,
            "filters": list(self.filter_fields),
            "fields": [
                {"name": f.name, "label": f.label, "kind": f.kind, "default": f.default}
                for f in self.fields
            ],
        }


# -----------------------------------------------------------------------------
# Computed columns
# -----------------------------------------------------------------------------
def _survey_delay(stage: Stage, item: Mapping[str, Any], values: Mapping[str, Any]) -> Dict[str, Any]:
    actual = values.get(stage.actual_column)
    planned = item.get("planned")
    if actual is None:
        return {}
    return {"delay_2": records.delay_days(actual, planned)}


def _ip_payment_total(stage: Stage, item: Mapping[str, Any], values: Mapping[str, Any]) -> Dict[str, Any]:
    """Recompute the total when either input is written; the other comes from the stored row."""
    names = ("ip_payment_per_installation", "gst_18_percent")
    if not any(n in values for n in names):
        return {}
    per, gst = (values[n] if n in values else item.get(n) for n in names)
    return {"total_amount_payment_to_ip": records.ip_payment_total(per, gst)}


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------
STAGES: Tuple[Stage, ...] = (
    Stage(
        key="work-order",
        title="LOI & MR",
        page="Work order",
        step=1,
        table="work_order",
        match_column="reg_id",
        fields=(
            Field("work_order_no", "Work Order No"),
            Field("work_order_date", "Work Order Date", DATE),
            Field("work_order_file", "Work Order File", FILE, storage_prefix="work-order-documents"),
        ),
        duplicate_message=(
            "Work Order Number already exists. This database still has a unique key "
            "on work_order_no; drop it to share one number across beneficiaries."
        ),
    ),
    Stage(
        key="sanction",
        title="Survey / Sanction",
        page="Survey",
        step=2,
        table="survey",
        match_column="reg_id",
        actual_from="survey_dt",
        fields=(
            Field("survey_dt", "Survey Date", DATE),
            Field("survey_status", "Survey Status", STATUS, default="Completed"),
            Field("survey_remarks", "Remarks"),
            Field("surveyor_name", "Surveyor Name"),
            Field("is_approved", "Approved", BOOL),
            Field("survey_file", "Survey File", FILE, storage_prefix="survey-documents"),
        ),
        extra_columns=("delay_2",),
        computed=_survey_delay,
    ),
    Stage(
        key="dispatch",
        title="Dispatch & Receiving",
        step=3,
        table="dispatch_material",
        actual_policy=ONCE,
        fields=(
            Field("dispatched_plan", "Dispatch Plan", STATUS, default="Done"),
            Field("plan_date", "Plan Date", DATE),
            Field("material_received", "Material Received", STATUS, default="Done"),
            Field("material_received_date", "Material Received Date", DATE),
            Field("invoice_no", "Invoice No"),
            Field("way_bill_no", "Way Bill No"),
            Field("date", "Date", DATE),
            Field("material_chalan_link", "Challan", FILE, storage_prefix="challan"),
        ),
    ),
    Stage(
        key="installation",
        title="Installation",
        step=4,
        table="installation",
        actual_policy=ONCE,
        filter_fields=("reg_id", "village", "block", "district", "pump_source", "pump_capacity", "ip_name"),
        fields=(
            Field("installation_status", "Installation Status", STATUS, default="Done"),
            Field("installation_date", "Installation Date", DATE),
            Field("delay_4", "Delay"),
            Field(
                "photo_uploaded_on_upad_app",
                "Photo (UPAD app)",
                FILE,
                storage_prefix="installation-photos",
            ),
        ),
    ),
    Stage(
        key="portal-update",
        title="Portal Update",
        step=5,
        table="portal_update",
        match_column="reg_id",
        actual_policy=ONCE,
        touch_updated_at=True,
        fields=(
            Field("photo_link", "Photo", FILE, storage_prefix="portal-updates"),
            Field("photo_rms_data_pending", "Photo / RMS Data", FILE, storage_prefix="portal-updates"),
            Field("longitude", "Longitude", NUMBER),
            Field("latitude", "Latitude", NUMBER),
            Field("supply_aapurti_date", "Supply Aapurti Date", DATE),
            Field("scadalot_creation", "SCADA Lot Creation", STATUS, default="Done"),
            Field("lot_ref_no", "Lot Ref No"),
            Field("lot_name", "Lot Name"),
            Field("asset_mapping_by_ea", "Asset Mapping by EA", STATUS, default="Done"),
            Field("days_7_verification", "7 Days Verification", STATUS, default="Done"),
            Field("rms_data_mail_to_rotommag", "RMS Data Mail", STATUS, default="Done"),
            Field("delay_5", "Delay"),
        ),
    ),
    Stage(
        key="system-info",
        title="System Info",
        step=7,
        table="system_info",
        match_column="reg_id",
        actual_policy=ONCE,
        touch_updated_at=True,
        fields=(
            Field("imei_no", "IMEI No"),
            Field("motor_serial_no", "Motor Serial No"),
            Field("pump_serial_no", "Pump Serial No"),
            Field("controller_serial_no", "Controller Serial No"),
            Field("rid_number", "RID Number"),
            *(Field(f"panel_no_{i}", f"Panel No {i}") for i in range(1, 7)),
        ),
    ),
    Stage(
        key="jcr-status",
        title="JCR Status",
        step=8,
        table="jcr_status",
        fields=(
            Field("jcr_status", "JCR Status", STATUS, default="Done"),
            Field("jcr_submit_date", "JCR Submit Date", DATE),
            Field("jcr_link", "JCR Document", FILE, storage_prefix="jcr-documents"),
        ),
    ),
    Stage(
        key="beneficiary-share",
        title="JCC Completion / Beneficiary Share",
        page="Beneficiary Share",
        step=9,
        table="beneficiary_share",
        match_column="reg_id",
        upsert=True,
        portal_driven=True,
        fields=(
            Field("state_share_amt", "State Share Amount", AMOUNT),
            Field("state_share_dt", "State Share Date", DATE),
            Field("farmer_share_amt", "Farmer Share Amount", AMOUNT),
            Field("farmer_share_dt", "Farmer Share Date", DATE),
            Field("payment_mode", "Payment Mode"),
            Field("transaction_id", "Transaction ID"),
            Field("bank_name", "Bank Name"),
            Field("account_number", "Account Number"),
            Field("ifsc_code", "IFSC Code"),
            Field("payment_status", "Payment Status", STATUS, default="Pending"),
        ),
    ),
    Stage(
        key="insurance",
        title="Insurance",
        step=10,
        table="insurance",
        touch_updated_at=True,
        fields=(
            Field("insurance_no", "Insurance No"),
            Field("scada_insurance_upload", "SCADA Insurance Upload", STATUS, default="Done"),
            Field("insurance_file", "Insurance File", FILE, storage_prefix="insurance"),
        ),
    ),
    Stage(
        key="ip-payment",
        title="IP Payment",
        page="IP payment",
        step=11,
        table="ip_payment",
        fields=(
            Field("ip_jcr_csr_payment", "JCR / CSR Payment"),
            Field("installation_payment_to_ip", "Installation Payment to IP", STATUS, default="Done"),
            Field("ip_payment_per_installation", "Payment per Installation", AMOUNT),
            Field("gst_18_percent", "GST %", AMOUNT),
            Field("bill_send_date", "Bill Send Date", DATE),
        ),
        extra_columns=("total_amount_payment_to_ip",),
        computed=_ip_payment_total,
    ),
)

_BY_KEY: Dict[str, Stage] = {s.key: s for s in STAGES}

# Page titles offered in the user settings screen (page_access).
PAGES: Tuple[str, ...] = ("Dashboard", *(s.page_title for s in STAGES), "Settings")


def get_stage(key: str) -> Stage:
    try:
        return _BY_KEY[key]
    except KeyError:
        raise KeyError(f"Unknown stage: {key}") from None
