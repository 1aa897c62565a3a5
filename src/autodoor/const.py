# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Constants shared across the automatic door kernel."""

# Broadcast event names
EVENT_DOOR_STATUS = "door:status-update"
EVENT_SENSOR_DISTANCE = "sensor:distance-update"
EVENT_ALERT_NEW = "alert:new"
EVENT_ALERT_ACKNOWLEDGED = "alert:acknowledged"

# Setting keys
SETTING_DETECTION_THRESHOLD = "detection_threshold"
SETTING_AUTO_CLOSE_TIMER = "auto_close_timer"
SETTING_SENSOR_UPDATE_INTERVAL = "sensor_update_interval"
SETTING_ALERT_SOUND_ENABLED = "alert_sound_enabled"
SETTING_NOTIFICATIONS_ENABLED = "notifications_enabled"

# Door request actions
ACTION_OPEN = "open"
ACTION_CLOSE = "close"

# Sensor defaults (distance units are centimetres)
DEFAULT_MIN_DISTANCE = 50.0
DEFAULT_MAX_DISTANCE = 400.0
DEFAULT_INITIAL_DISTANCE = 300.0
DEFAULT_MAX_STEP = 10.0
DEFAULT_NEAR_PROBABILITY = 0.1
DEFAULT_NEAR_MIN_DISTANCE = 20.0
DEFAULT_NEAR_MAX_DISTANCE = 120.0
NEAR_FIELD_CUTOFF = 100.0
DETECTION_COOLDOWN = 5.0

# Setting defaults
DEFAULT_DETECTION_THRESHOLD = 200
DEFAULT_AUTO_CLOSE_TIMER = 30
DEFAULT_SENSOR_UPDATE_INTERVAL = 500

# Alert listing
DEFAULT_ALERT_PAGE_SIZE = 20
DEFAULT_LOG_LIMIT = 50

# Broadcast audit ring size
DEFAULT_AUDIT_LOG_SIZE = 1000

# Pending writes after which persistence is reported as lagging
DEFAULT_PERSISTENCE_LAG_THRESHOLD = 100

# Window used by system statistics
STATS_WINDOW_HOURS = 24
