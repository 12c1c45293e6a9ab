from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import utcnow


class Document(db.Model):
    """
    Schema-less record in a named collection.

    The table is the backing store for every collection the service uses
    (stock, sales, zreports, item_types, users). `data` holds the record
    body as JSON; `seq` preserves insertion order; `version_id` is the
    optimistic-lock counter used by compare-and-set batch writes.

    INVARIANT: `data` is only ever replaced, never mutated in place, so the
    ORM always sees the change and bumps version_id.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
        db.Index("ix_documents_collection_seq", "collection", "seq"),
        {"sqlite_autoincrement": True},
    )

    seq = db.Column(db.Integer, primary_key=True)

    collection = db.Column(db.String(64), nullable=False)
    doc_id = db.Column(db.String(64), nullable=False)

    data = db.Column(db.JSON, nullable=False, default=dict)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.doc_id} v{self.version_id}>"
