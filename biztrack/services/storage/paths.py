"""Document paths (schema-in-code).

Firestore has no DDL or migrations. Collections appear when the first
document is written, so these helpers are the single source of truth
for where things live:

    users/{uid}                      profile
    users/{uid}/incomes/{id}         income records
    users/{uid}/expenses/{id}        expense records
    users/{uid}/appointments/{id}    appointments
    auditEvents/{id}                 audit trail
"""

from biztrack.models.records import RecordKind


COLLECTION_USERS = "users"
COLLECTION_AUDIT_EVENTS = "auditEvents"


def join(*segments: str) -> str:
    for segment in segments:
        if not segment or "/" in segment:
            raise ValueError(f"Invalid path segment: {segment!r}")
    return "/".join(segments)


def user_doc_path(uid: str) -> str:
    return join(COLLECTION_USERS, uid)


def records_path(uid: str, kind: RecordKind) -> str:
    return join(COLLECTION_USERS, uid, kind.value)


def record_doc_path(uid: str, kind: RecordKind, doc_id: str) -> str:
    return join(COLLECTION_USERS, uid, kind.value, doc_id)


def split(path: str) -> tuple[str, str]:
    """Split a document path into (collection path, document id)."""
    collection, _, doc_id = path.rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id
