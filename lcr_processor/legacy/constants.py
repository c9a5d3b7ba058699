"""Lookup ids of the legacy schema."""

# resource_info_type_lu
RESOURCE_INFO_EXTERNAL_REF_ID = 1
RESOURCE_INFO_HANDLE = 2
RESOURCE_INFO_RATING = 4
RESOURCE_INFO_RELIABILITY = 5
RESOURCE_INFO_REGISTRATION_DATE = 6
RESOURCE_INFO_PAYMENT = 7
RESOURCE_INFO_PAYMENT_STATUS = 8
RESOURCE_INFO_APPEALS_COMPLETED_EARLY = 13

NO_VALUE = "NO"
NOT_APPLICABLE = "N/A"

# audit_action_type_lu
PROJECT_USER_AUDIT_CREATE_TYPE = 1
PROJECT_USER_AUDIT_DELETE_TYPE = 2

# notification_type_lu
TIMELINE_NOTIFICATION_ID = 1

# project_category_lu
DESIGN_PROJECT_TYPE = 1
DEVELOPMENT_PROJECT_TYPE = 2
COMPONENT_TESTING_PROJECT_TYPE = 5
COPILOT_POSTING_PROJECT_TYPE = 29

# phase ids of comp_versions / user_rating are project_category_id + 111
RATING_PHASE_OFFSET = 111
COMPONENT_TESTING_PHASE_ID = 113

# project_phase
REGISTRATION_PHASE_TYPE_ID = 1
OPEN_PHASE_STATUS_ID = 2

# project_info_type_lu
PROJECT_INFO_COMPONENT_ID = 2
DEVELOPER_FORUM_INFO_NAME = "Developer Forum ID"

# user_status
SUSPENSION_STATUS_TYPE_ID = 1
SUSPENDED_STATUS_ID = 3

ACTIVE_COPILOT_STATUS_ID = 1

# id_sequences names
RESOURCE_ID_SEQ = "resource_id_seq"
COMPONENT_INQUIRY_SEQ = "component_inquiry_seq"
