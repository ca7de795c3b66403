EVENT_FLOWS_URL = "/api/v1/events/{event_id}/automation/flows"
EVENT_FLOW_FROM_TEMPLATE_URL = "/api/v1/events/{event_id}/automation/flows/from-template"
FLOW_TEMPLATES_URL = "/api/v1/automation/templates"
FLOW_URL = "/api/v1/automation/flows/{flow_id}"
FLOW_STATUS_URL = "/api/v1/automation/flows/{flow_id}/status"

FLOW_EXECUTIONS_URL = "/api/v1/automation/flows/{flow_id}/executions"
FLOW_RETRY_FAILED_URL = "/api/v1/automation/flows/{flow_id}/retry-failed"
FLOW_CANCEL_PENDING_URL = "/api/v1/automation/flows/{flow_id}/cancel-pending"
FLOW_TRIGGER_URL = "/api/v1/automation/flows/{flow_id}/trigger"
FLOW_PREVIEW_URL = "/api/v1/automation/flows/{flow_id}/preview"
EXECUTION_RUN_URL = "/api/v1/automation/executions/{execution_id}/run"

EVENT_RSVP_CHANGED_URL = "/api/v1/events/{event_id}/automation/rsvp-changed"
EVENT_NOTIFICATION_SENT_URL = "/api/v1/events/{event_id}/automation/notification-sent"
