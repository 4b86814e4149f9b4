from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from ..platform.database import Base


class DocumentStats(Base):
    """Per (document type, school) rollup of generated_documents. Rebuildable."""

    __tablename__ = "document_stats"
    __table_args__ = (
        UniqueConstraint("document_type_id", "school_id", name="uq_document_stats_type_school"),
    )

    id = Column(Integer, primary_key=True, index=True)
    document_type_id = Column(Integer, ForeignKey("document_types.id"), index=True, nullable=False)
    school_id = Column(String, index=True, nullable=False)
    total_generated = Column(Integer, nullable=False, default=0)
    last_generated = Column(DateTime(timezone=True), nullable=True)
