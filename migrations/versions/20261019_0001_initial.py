# migrations/versions/20261019_0001_initial.py
# Initial schema: portal master, workflow stage tables, dropdown master, users
from alembic import op

# Revision identifiers, used by Alembic.
revision = "20261019_0001_initial"
down_revision = None
branch_labels = None
depends_on = None

_TABLE_OPTS = "ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_0900_ai_ci"


def _stage_table(name: str, step: int, columns: str) -> str:
    """Stage tables share id / reg_id / serial_no / planned_N / actual_N."""
    return f"""
    CREATE TABLE IF NOT EXISTS `{name}` (
      `id` INT NOT NULL AUTO_INCREMENT,
      `reg_id` VARCHAR(64) NOT NULL,
      `serial_no` VARCHAR(64) NULL,
      `planned_{step}` DATETIME NULL,
      `actual_{step}` DATETIME NULL,
      {columns.strip()}
      PRIMARY KEY (`id`),
      KEY `ix_{name}_reg_id` (`reg_id`),
      KEY `ix_{name}_planned` (`planned_{step}`)
    ) {_TABLE_OPTS};
    """


STAGE_TABLES = [
    ("work_order", 1, """
      `work_order_no` VARCHAR(100) NULL,
      `work_order_date` DATE NULL,
      `work_order_file` VARCHAR(1000) NULL,
      KEY `ix_work_order_no` (`work_order_no`),
    """),
    ("survey", 2, """
      `delay_2` INT NULL,
      `survey_dt` DATETIME NULL,
      `survey_status` VARCHAR(64) NULL,
      `survey_remarks` TEXT NULL,
      `surveyor_name` VARCHAR(191) NULL,
      `is_approved` TINYINT(1) NOT NULL DEFAULT 0,
      `survey_file` VARCHAR(1000) NULL,
    """),
    ("dispatch_material", 3, """
      `dispatched_plan` VARCHAR(32) NULL,
      `plan_date` DATE NULL,
      `material_received` VARCHAR(32) NULL,
      `material_received_date` DATE NULL,
      `invoice_no` VARCHAR(100) NULL,
      `way_bill_no` VARCHAR(100) NULL,
      `date` DATE NULL,
      `material_chalan_link` VARCHAR(1000) NULL,
    """),
    ("installation", 4, """
      `installation_status` VARCHAR(32) NULL,
      `installation_date` DATE NULL,
      `delay_4` VARCHAR(32) NULL,
      `photo_uploaded_on_upad_app` VARCHAR(1000) NULL,
    """),
    ("portal_update", 5, """
      `delay_5` VARCHAR(32) NULL,
      `photo_link` VARCHAR(1000) NULL,
      `photo_rms_data_pending` VARCHAR(1000) NULL,
      `longitude` DOUBLE NULL,
      `latitude` DOUBLE NULL,
      `supply_aapurti_date` DATE NULL,
      `scadalot_creation` VARCHAR(32) NULL,
      `lot_ref_no` VARCHAR(100) NULL,
      `lot_name` VARCHAR(191) NULL,
      `asset_mapping_by_ea` VARCHAR(32) NULL,
      `days_7_verification` VARCHAR(32) NULL,
      `rms_data_mail_to_rotommag` VARCHAR(32) NULL,
      `updated_at` DATETIME NULL,
    """),
    ("invoicing", 6, """
      `raisoni_invoice_no` VARCHAR(100) NULL,
      `laxmi_invoice_no` VARCHAR(100) NULL,
    """),
    ("system_info", 7, """
      `imei_no` VARCHAR(64) NULL,
      `motor_serial_no` VARCHAR(100) NULL,
      `pump_serial_no` VARCHAR(100) NULL,
      `controller_serial_no` VARCHAR(100) NULL,
      `rid_number` VARCHAR(100) NULL,
      `panel_no_1` VARCHAR(100) NULL,
      `panel_no_2` VARCHAR(100) NULL,
      `panel_no_3` VARCHAR(100) NULL,
      `panel_no_4` VARCHAR(100) NULL,
      `panel_no_5` VARCHAR(100) NULL,
      `panel_no_6` VARCHAR(100) NULL,
      `updated_at` DATETIME NULL,
    """),
    ("jcr_status", 8, """
      `jcr_status` VARCHAR(32) NULL,
      `jcr_submit_date` DATE NULL,
      `jcr_link` VARCHAR(1000) NULL,
    """),
    ("beneficiary_share", 9, """
      `state_share_amt` DECIMAL(15,2) NULL,
      `state_share_dt` DATE NULL,
      `farmer_share_amt` DECIMAL(15,2) NULL,
      `farmer_share_dt` DATE NULL,
      `payment_mode` VARCHAR(64) NULL,
      `transaction_id` VARCHAR(100) NULL,
      `bank_name` VARCHAR(191) NULL,
      `account_number` VARCHAR(64) NULL,
      `ifsc_code` VARCHAR(20) NULL,
      `payment_status` VARCHAR(32) NULL,
    """),
    ("insurance", 10, """
      `insurance_no` VARCHAR(100) NULL,
      `scada_insurance_upload` VARCHAR(32) NULL,
      `insurance_file` VARCHAR(1000) NULL,
      `updated_at` DATETIME NULL,
    """),
    ("ip_payment", 11, """
      `ip_jcr_csr_payment` VARCHAR(100) NULL,
      `installation_payment_to_ip` VARCHAR(32) NULL,
      `ip_payment_per_installation` DECIMAL(15,2) NULL,
      `gst_18_percent` DECIMAL(5,2) NULL,
      `total_amount_payment_to_ip` DECIMAL(15,2) NULL,
      `bill_send_date` DATE NULL,
    """),
]


def upgrade():
    # Beneficiary master
    op.execute(f"""
    CREATE TABLE IF NOT EXISTS `portal` (
      `id` INT NOT NULL AUTO_INCREMENT,
      `reg_id` VARCHAR(64) NOT NULL,
      `serial_no` VARCHAR(64) NULL,
      `beneficiary_name` VARCHAR(255) NULL,
      `fathers_name` VARCHAR(255) NULL,
      `mobile_number` VARCHAR(20) NULL,
      `village` VARCHAR(191) NULL,
      `block` VARCHAR(191) NULL,
      `district` VARCHAR(191) NULL,
      `category` VARCHAR(64) NULL,
      `pincode` VARCHAR(12) NULL,
      `pump_source` VARCHAR(64) NULL,
      `pump_capacity` VARCHAR(64) NULL,
      `pump_head` VARCHAR(64) NULL,
      `ip_name` VARCHAR(191) NULL,
      `installer` VARCHAR(191) NULL,
      `amount` DECIMAL(15,2) NULL,
      `created_at` DATETIME NULL DEFAULT CURRENT_TIMESTAMP,
      PRIMARY KEY (`id`),
      UNIQUE KEY `ux_portal_reg_id` (`reg_id`),
      KEY `ix_portal_ip_district` (`ip_name`, `district`)
    ) {_TABLE_OPTS};
    """)

    for name, step, columns in STAGE_TABLES:
        op.execute(_stage_table(name, step, columns))

    # IP / installer dropdown
    op.execute(f"""
    CREATE TABLE IF NOT EXISTS `master_dropdown` (
      `id` INT NOT NULL AUTO_INCREMENT,
      `installer_name` VARCHAR(191) NULL,
      `name` VARCHAR(191) NULL,
      `value` VARCHAR(191) NULL,
      `label` VARCHAR(191) NULL,
      PRIMARY KEY (`id`)
    ) {_TABLE_OPTS};
    """)

    # Operators
    op.execute(f"""
    CREATE TABLE IF NOT EXISTS `users` (
      `id` INT NOT NULL AUTO_INCREMENT,
      `user_name` VARCHAR(191) NOT NULL,
      `user_id` VARCHAR(191) NOT NULL,
      `password_hash` VARCHAR(255) NOT NULL,
      `role` VARCHAR(16) NOT NULL DEFAULT 'User',
      `page_access` TEXT NULL,
      `status` VARCHAR(16) NOT NULL DEFAULT 'Active',
      `created_at` DATETIME NULL DEFAULT CURRENT_TIMESTAMP,
      PRIMARY KEY (`id`),
      UNIQUE KEY `ux_users_user_id` (`user_id`)
    ) {_TABLE_OPTS};
    """)


def downgrade():
    op.execute("DROP TABLE IF EXISTS `users`")
    op.execute("DROP TABLE IF EXISTS `master_dropdown`")
    for name, _, _ in reversed(STAGE_TABLES):
        op.execute(f"DROP TABLE IF EXISTS `{name}`")
    op.execute("DROP TABLE IF EXISTS `portal`")
