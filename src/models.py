# src/models.py
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Date, DECIMAL, Float
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()

class Portal(Base):
    """Beneficiary master; every stage row points here through reg_id."""
    __tablename__ = 'portal'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), unique=True, nullable=False)
    serial_no = Column(String(64))
    beneficiary_name = Column(String(255))
    fathers_name = Column(String(255))
    mobile_number = Column(String(20))
    village = Column(String(191))
    block = Column(String(191))
    district = Column(String(191))
    category = Column(String(64))
    pincode = Column(String(12))
    pump_source = Column(String(64))
    pump_capacity = Column(String(64))
    pump_head = Column(String(64))
    ip_name = Column(String(191))
    installer = Column(String(191))
    amount = Column(DECIMAL(15, 2))
    created_at = Column(DateTime, default=datetime.now)

class WorkOrder(Base):
    __tablename__ = 'work_order'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_1 = Column(DateTime)
    actual_1 = Column(DateTime)
    work_order_no = Column(String(100), index=True)
    work_order_date = Column(Date)
    work_order_file = Column(String(1000))

class Survey(Base):
    __tablename__ = 'survey'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_2 = Column(DateTime)
    actual_2 = Column(DateTime)
    delay_2 = Column(Integer)
    survey_dt = Column(DateTime)
    survey_status = Column(String(64))
    survey_remarks = Column(Text)
    surveyor_name = Column(String(191))
    is_approved = Column(Boolean, default=False)
    survey_file = Column(String(1000))

class DispatchMaterial(Base):
    __tablename__ = 'dispatch_material'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_3 = Column(DateTime)
    actual_3 = Column(DateTime)
    dispatched_plan = Column(String(32))
    plan_date = Column(Date)
    material_received = Column(String(32))
    material_received_date = Column(Date)
    invoice_no = Column(String(100))
    way_bill_no = Column(String(100))
    date = Column(Date)
    material_chalan_link = Column(String(1000))

class Installation(Base):
    __tablename__ = 'installation'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_4 = Column(DateTime)
    actual_4 = Column(DateTime)
    installation_status = Column(String(32))
    installation_date = Column(Date)
    delay_4 = Column(String(32))
    photo_uploaded_on_upad_app = Column(String(1000))

class PortalUpdate(Base):
    __tablename__ = 'portal_update'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_5 = Column(DateTime)
    actual_5 = Column(DateTime)
    delay_5 = Column(String(32))
    photo_link = Column(String(1000))
    photo_rms_data_pending = Column(String(1000))
    longitude = Column(Float)
    latitude = Column(Float)
    supply_aapurti_date = Column(Date)
    scadalot_creation = Column(String(32))
    lot_ref_no = Column(String(100))
    lot_name = Column(String(191))
    asset_mapping_by_ea = Column(String(32))
    days_7_verification = Column(String(32))
    rms_data_mail_to_rotommag = Column(String(32))
    updated_at = Column(DateTime)

class SystemInfo(Base):
    __tablename__ = 'system_info'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_7 = Column(DateTime)
    actual_7 = Column(DateTime)
    imei_no = Column(String(64))
    motor_serial_no = Column(String(100))
    pump_serial_no = Column(String(100))
    controller_serial_no = Column(String(100))
    rid_number = Column(String(100))
    panel_no_1 = Column(String(100))
    panel_no_2 = Column(String(100))
    panel_no_3 = Column(String(100))
    panel_no_4 = Column(String(100))
    panel_no_5 = Column(String(100))
    panel_no_6 = Column(String(100))
    updated_at = Column(DateTime)

class JcrStatus(Base):
    __tablename__ = 'jcr_status'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_8 = Column(DateTime)
    actual_8 = Column(DateTime)
    jcr_status = Column(String(32))
    jcr_submit_date = Column(Date)
    jcr_link = Column(String(1000))

class BeneficiaryShare(Base):
    __tablename__ = 'beneficiary_share'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_9 = Column(DateTime)
    actual_9 = Column(DateTime)
    state_share_amt = Column(DECIMAL(15, 2))
    state_share_dt = Column(Date)
    farmer_share_amt = Column(DECIMAL(15, 2))
    farmer_share_dt = Column(Date)
    payment_mode = Column(String(64))
    transaction_id = Column(String(100))
    bank_name = Column(String(191))
    account_number = Column(String(64))
    ifsc_code = Column(String(20))
    payment_status = Column(String(32))

class Insurance(Base):
    __tablename__ = 'insurance'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_10 = Column(DateTime)
    actual_10 = Column(DateTime)
    insurance_no = Column(String(100))
    scada_insurance_upload = Column(String(32))
    insurance_file = Column(String(1000))
    updated_at = Column(DateTime)

class IpPayment(Base):
    __tablename__ = 'ip_payment'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_11 = Column(DateTime)
    actual_11 = Column(DateTime)
    ip_jcr_csr_payment = Column(String(100))
    installation_payment_to_ip = Column(String(32))
    ip_payment_per_installation = Column(DECIMAL(15, 2))
    gst_18_percent = Column(DECIMAL(5, 2))
    total_amount_payment_to_ip = Column(DECIMAL(15, 2))
    bill_send_date = Column(Date)

class Invoicing(Base):
    """Read by the dashboard only (invoice numbers per beneficiary)."""
    __tablename__ = 'invoicing'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reg_id = Column(String(64), nullable=False, index=True)
    serial_no = Column(String(64))
    planned_6 = Column(DateTime)
    actual_6 = Column(DateTime)
    raisoni_invoice_no = Column(String(100))
    laxmi_invoice_no = Column(String(100))

class MasterDropdown(Base):
    __tablename__ = 'master_dropdown'
    id = Column(Integer, primary_key=True, autoincrement=True)
    installer_name = Column(String(191))
    name = Column(String(191))
    value = Column(String(191))
    label = Column(String(191))

class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_name = Column(String(191), nullable=False)
    user_id = Column(String(191), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default='User')  # Admin | User
    page_access = Column(Text)  # comma separated page titles
    status = Column(String(16), nullable=False, default='Active')  # Active | Inactive
    created_at = Column(DateTime, default=datetime.now)
