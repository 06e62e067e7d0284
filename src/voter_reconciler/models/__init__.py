"""ORM model registry — import all models so Alembic autogenerate discovers them."""

from voter_reconciler.models.contact import Contact, ContactAlias, ContactPhone
from voter_reconciler.models.contact_field_edit import ContactFieldEdit
from voter_reconciler.models.import_run import ImportRun
from voter_reconciler.models.rollback_entry import RollbackEntry

__all__ = [
    "Contact",
    "ContactAlias",
    "ContactFieldEdit",
    "ContactPhone",
    "ImportRun",
    "RollbackEntry",
]
