from sqlmodel import Field, SQLModel


class Agency(SQLModel, table=True):
    __tablename__ = "agencies"
    id: int | None = Field(default=None, primary_key=True)
    name: str


class Host(SQLModel, table=True):
    """A person who takes appointments. Identity lives elsewhere; this row is what bookings reference."""

    __tablename__ = "hosts"
    id: int | None = Field(default=None, primary_key=True)
    agency_id: int = Field(foreign_key="agencies.id", index=True)
    name: str
    email: str
    booking_slug: str | None = Field(default=None, unique=True, index=True)
    is_active: bool = True
    # Bumped by every booking insert; the row lock serializes bookers per host
    booking_version: int = 0


class HostPublic(SQLModel):
    id: int
    name: str
