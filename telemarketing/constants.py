##### LEAD STATUSES
LEAD_STATUS_NEW = 'NEW'
LEAD_STATUS_ASSIGNED = 'ASSIGNED'
LEAD_STATUS_COMPLETED = 'COMPLETED'
LEAD_STATUS_DNC = 'DNC'

##### CALL OUTCOMES (UI labels depend on these literal tokens)
OUTCOME_NO_ANSWER = 'no_answer'
OUTCOME_VOICEMAIL = 'voicemail'
OUTCOME_NOT_INTERESTED = 'not_interested'
OUTCOME_INTERESTED = 'interested'
OUTCOME_FOLLOWUP = 'followup'
OUTCOME_WRONG_NUMBER = 'wrong_number'
OUTCOME_DNC = 'dnc'

CALL_OUTCOMES = (
    OUTCOME_NO_ANSWER,
    OUTCOME_VOICEMAIL,
    OUTCOME_NOT_INTERESTED,
    OUTCOME_INTERESTED,
    OUTCOME_FOLLOWUP,
    OUTCOME_WRONG_NUMBER,
    OUTCOME_DNC,
)

# outcomes that recycle the lead until the attempt threshold is reached
RETRYABLE_OUTCOMES = (
    OUTCOME_NO_ANSWER,
    OUTCOME_VOICEMAIL,
    OUTCOME_NOT_INTERESTED,
    OUTCOME_WRONG_NUMBER,
)

FOLLOWUP_PRIORITIES = ('low', 'medium', 'high')

##### FOLLOW-UP SCOPES
SCOPE_OWN = 'own'
SCOPE_ALL = 'all'

##### CONFIRMATION PHRASES
PERMANENT_DELETE_CONFIRMATION = 'DELETE'
MASTER_CLEAR_CONFIRMATION = 'DELETE ALL LEADS'

##### TRASH
TRASHABLE_ENTITY_TYPES = ('leads', 'appointments', 'calls')
BULK_SCOPES = {
    'older-7': 7,
    'older-30': 30,
    'older-90': 90,
    'all': None,
}
BULK_OPERATION_DELETE = 'delete'
BULK_OPERATION_TRASH = 'trash'

EMPTY_NAME_PLACEHOLDER = '—'
NO_LEADS_MESSAGE = 'No leads available'

# a single call session never runs longer than a day
MAX_CALL_DURATION_SECONDS = 24 * 60 * 60
