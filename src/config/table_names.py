from enum import Enum


class TableNames(str, Enum):
    EVENTS = "events"
    GUESTS = "guests"
    SEATING_TABLES = "seating_tables"
    NOTIFICATION_LOGS = "notification_logs"
    AUTOMATION_FLOWS = "automation_flows"
    AUTOMATION_EXECUTIONS = "automation_executions"
