"""Who may do what.

Every role check in the scheduling core goes through ``ACCESS_POLICY`` so the
rules can be read in one place. A scope either denies the operation or says
which rows the caller may touch.
"""

from fastapi import HTTPException, status

from backend.models.appointment import Appointment
from backend.models.user import User

DENIED = 'denied'
ANY = 'any'
OWN = 'own'
ASSIGNED = 'assigned'
ASSIGNED_OR_UNASSIGNED = 'assigned_or_unassigned'

ACCESS_POLICY: dict[tuple[str, str], str] = {
    ('student', 'availability.manage'): DENIED,
    ('counselor', 'availability.manage'): OWN,
    ('admin', 'availability.manage'): DENIED,

    ('student', 'appointment.create'): OWN,
    ('counselor', 'appointment.create'): ANY,
    ('admin', 'appointment.create'): DENIED,

    ('student', 'appointment.list'): OWN,
    ('counselor', 'appointment.list'): ASSIGNED_OR_UNASSIGNED,
    ('admin', 'appointment.list'): DENIED,

    ('student', 'appointment.update'): OWN,
    ('counselor', 'appointment.update'): ASSIGNED_OR_UNASSIGNED,
    ('admin', 'appointment.update'): DENIED,

    ('student', 'appointment.delete'): DENIED,
    ('counselor', 'appointment.delete'): ASSIGNED,
    ('admin', 'appointment.delete'): DENIED,

    ('student', 'user.list_students'): DENIED,
    ('counselor', 'user.list_students'): ANY,
    ('admin', 'user.list_students'): DENIED,

    ('student', 'user.create_counselor'): DENIED,
    ('counselor', 'user.create_counselor'): DENIED,
    ('admin', 'user.create_counselor'): ANY,
}

DENIAL_MESSAGES = {
    'availability.manage': 'Only counselors can manage availability.',
    'appointment.create': 'Appointment booking is restricted. Use counselor or student flow.',
    'appointment.list': 'Access to appointments is restricted for privacy.',
    'appointment.update': 'Appointment updates are restricted for privacy.',
    'appointment.delete': 'Only counselors can delete appointments.',
    'user.list_students': 'Access to student list is restricted for privacy.',
    'user.create_counselor': 'Admin only.',
}

# Fields each role may send in an appointment patch.
UPDATABLE_FIELDS: dict[str, frozenset[str]] = {
    'student': frozenset({'scheduled_at', 'status'}),
    'counselor': frozenset({'status', 'counselor_report', 'scheduled_at', 'assigned_to'}),
}


def scope_for(user: User, operation: str) -> str:
    return ACCESS_POLICY.get((user.role, operation), DENIED)


def require_scope(user: User, operation: str) -> str:
    scope = scope_for(user, operation)
    if scope == DENIED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=DENIAL_MESSAGES.get(operation, 'Forbidden.'),
        )
    return scope


def in_scope(scope: str, user: User, appointment: Appointment) -> bool:
    if scope == ANY:
        return True
    if scope == OWN:
        return appointment.student_id == user.id
    if scope == ASSIGNED:
        return appointment.assigned_to == user.id
    if scope == ASSIGNED_OR_UNASSIGNED:
        return appointment.assigned_to is None or appointment.assigned_to == user.id
    return False


def forbidden_fields(user: User, fields: set[str]) -> set[str]:
    return fields - UPDATABLE_FIELDS.get(user.role, frozenset())
