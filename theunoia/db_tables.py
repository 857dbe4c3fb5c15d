# db_tables.py: single source of truth for table, RPC and bucket names
PROJECTS              = "user_projects"     # default schema: public
BIDS                  = "bids"
PROFILES              = "user_profiles"
USER_ROLES            = "user_roles"
USER_SKILLS           = "user_skills"
FREELANCER_CREDITS    = "freelancer_credits"
CREDIT_TRANSACTIONS   = "credit_transactions"
FREELANCER_ACCESS     = "freelancer_access"
STUDENT_VERIFICATIONS = "student_verifications"
EMAIL_CODES           = "email_verification_codes"
COLLEGES              = "colleges"
RATINGS               = "freelancer_ratings"
CONVERSATIONS         = "conversations"
MESSAGES              = "messages"
PHASE_STATES          = "project_phase_states"
TASKS                 = "project_tasks"
TASK_ACTIVITY         = "project_task_activity"

# stored procedures
RPC_CREDIT_BALANCE    = "get_freelancer_credit_balance"
RPC_MODIFY_CREDITS    = "admin_modify_credits"
RPC_BIDS_WITH_PROFILE = "get_project_bids_with_profiles"
RPC_COLLEGE_STATES    = "get_college_states"

# storage buckets
BUCKET_PROFILE_PICTURES   = "profile-pictures"
BUCKET_ID_CARDS           = "student-id-cards"
BUCKET_PROJECT_FILES      = "project-files"
BUCKET_PROJECT_IMAGES     = "project-images"
BUCKET_MESSAGE_ATTACHMENTS = "message-attachments"

# edge functions
FN_SEND_EMAIL_CODE    = "send-email-verification"
FN_VERIFY_EMAIL_CODE  = "verify-email-code"
