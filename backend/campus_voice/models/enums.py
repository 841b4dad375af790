import enum


class Role(str, enum.Enum):
    STUDENT = "student"
    ADMIN = "admin"


class Category(str, enum.Enum):
    ACADEMIC = "academic"
    INFRASTRUCTURE = "infrastructure"
    STAFF = "staff"
    FACILITIES = "facilities"
    OTHER = "other"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


# Display priority: critical sorts first
SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.MEDIUM: 1,
    Severity.LOW: 2,
}


class TicketStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class Visibility(str, enum.Enum):
    PRIVATE = "private"
    PUBLIC = "public"
