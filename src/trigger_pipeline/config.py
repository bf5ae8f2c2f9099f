# config.py

# This file contains all the configuration settings for the trigger pipeline.
# Modify the values here to match your deployment.

# --- File and Directory Paths ---
# Input files (DBC, per-queue threshold lists) are read from this directory.
# The path is relative to the project's root folder.
INPUT_DIRECTORY = "input"

# Logs and the audit journal are written here. Created automatically.
OUTPUT_DIRECTORY = "output"

# CAN segments downloaded for threshold evaluation are stored here
# temporarily and removed once they have been scanned.
DOWNLOAD_DIRECTORY = "downloads"

# The DBC file used to decode downloaded CAN segments.
DBC_FILE = "steering_angle.dbc"

# Threshold list per vehicle-usage queue. One entry per line:
# display_name,signal_name,threshold
# Example: SteeringAngle,SAS_SteeringAngle,30
THRESHOLD_FILE_TEMPLATE = "can_sig_{queue}.txt"

# --- Queue Names ---
DEFAULT_QUEUE = "default_triggers"
PRODUCTION_CAR_QUEUE = "production_car_triggers"
TEST_DRIVE_CAR_QUEUE = "test_drive_car_triggers"
MEDIA_CAR_QUEUE = "media_car_triggers"
INTERNAL_CAR_QUEUE = "internal_car_triggers"
WRITE_DB_QUEUE = "write_db_triggers"
FUSION_CAR_QUEUE = "fusion_car_triggers"
NEGATIVE_TRIGGER_QUEUE = "negative_triggers"

# Records whose stage fails are moved to '<queue><suffix>'.
DEAD_LETTER_SUFFIX = "_dead_letter"

# Usage type -> vehicle-usage queue. Anything else goes to PRODUCTION_CAR_QUEUE.
USAGE_TYPE_QUEUES = {
    "production": PRODUCTION_CAR_QUEUE,
    "test_drive": TEST_DRIVE_CAR_QUEUE,
    "media": MEDIA_CAR_QUEUE,
    "internal": INTERNAL_CAR_QUEUE,
}
USAGE_FALLBACK_QUEUE = PRODUCTION_CAR_QUEUE

# Negative-trigger routing: "<car_type>_<usage_type>" -> queue.
# Unmapped pairs go to VEHICLE_TYPE_DEFAULT_QUEUE.
VEHICLE_TYPE_QUEUE_MAP = {
    "A_production": "type_a_production_queue",
    "A_test_drive": "type_a_test_drive_queue",
    "A_media": "type_a_media_queue",
    "A_internal": "type_a_internal_queue",
    "B_production": "type_b_production_queue",
    "B_test_drive": "type_b_test_drive_queue",
    "B_media": "type_b_media_queue",
    "B_internal": "type_b_internal_queue",
    "C_production": "type_c_production_queue",
    "C_test_drive": "type_c_test_drive_queue",
    "C_media": "type_c_media_queue",
    "C_internal": "type_c_internal_queue",
}
VEHICLE_TYPE_DEFAULT_QUEUE = DEFAULT_QUEUE

# --- Worker Pool Settings ---
# Number of worker threads servicing each queue.
WORKERS_PER_QUEUE = {
    DEFAULT_QUEUE: 10,
    PRODUCTION_CAR_QUEUE: 10,
    TEST_DRIVE_CAR_QUEUE: 10,
    MEDIA_CAR_QUEUE: 10,
    INTERNAL_CAR_QUEUE: 10,
    WRITE_DB_QUEUE: 2,
    NEGATIVE_TRIGGER_QUEUE: 2,
}

# Blocking pop timeout. Workers check the shutdown flag between pops, so this
# bounds how long shutdown takes to be noticed.
POP_TIMEOUT_S = 1.0

# How long the orchestrator waits for all workers before giving up.
SHUTDOWN_GRACE_S = 10.0

# Back the queues with a multiprocessing.Manager so other processes can
# push to and pop from them.
USE_MANAGER_QUEUES = False

# --- Retry Settings ---
RETRY_MAX_ATTEMPTS = 3
RETRY_DELAY_S = 1.0
RETRY_BACKOFF = True

# --- External APIs ---
TRIGGER_API_BASE_URL = "http://localhost:8080"
TRIGGER_FROM_PATH = "/api/triggers"
TRIGGER_DOWNLOAD_PATH = "/api/triggers/file"
API_TIMEOUT_S = 30.0

# Only triggers with one of these IDs are pulled into the pipeline.
TRIGGER_ID_LIST = [1001, 1002, 1003]
TRIGGER_USE_TYPE = "1"

# Webhook for queue-depth alerts. Leave empty to only log alerts.
ALERT_WEBHOOK_URL = ""

# --- Scheduled Tasks ---
TRIGGER_FETCH_INTERVAL_S = 300.0
QUEUE_MONITOR_INTERVAL_S = 300.0

# Queues checked by the depth monitor, in order, with their alert threshold.
QUEUE_DEPTH_ALERTS = [
    (DEFAULT_QUEUE, 1000),
    (PRODUCTION_CAR_QUEUE, 1000),
    (TEST_DRIVE_CAR_QUEUE, 1000),
    (MEDIA_CAR_QUEUE, 1000),
    (INTERNAL_CAR_QUEUE, 1000),
    (WRITE_DB_QUEUE, 1000),
]

# --- Master Debug Switch ---
# When False, nothing is printed to the console. File logs are always kept.
ENABLE_CONSOLE_LOGGING = True

# --- Granular Debug Flags ---
# Only honoured through console_logger.log_debug().
DEBUG_FLAGS = {
    # Logs every payload popped by a worker.
    'log_queue_payloads': False,

    # Logs the threshold verdict for every record in the CAN signal stage.
    'log_threshold_results': True,

    # Logs each audit transition.
    'log_audit_transitions': False,
}
