from sqlmodel import Field, SQLModel


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    full_name: str | None = None
    role: str = Field(default="patient", index=True)  # patient | provider | admin
    is_active: bool = True


class User(UserBase, table=True):
    """Identity row owned by the external identity service; read-only here."""

    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)

