"""SQLAlchemy model backing the SQL tabular store."""

from sqlalchemy import BigInteger, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sheetchain.db.session import Base


class SheetRow(Base):
    """One spreadsheet-style row, addressed by (sheet, row_number)."""

    __tablename__ = "sheet_rows"
    __table_args__ = (UniqueConstraint("sheet", "row_number", name="uq_sheet_rows_position"),)

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    sheet: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-based, header is row 1
    cells: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # JSON list of strings
