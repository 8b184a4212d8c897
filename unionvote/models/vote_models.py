from collections.abc import Awaitable, Callable
from enum import StrEnum

from bs4 import BeautifulSoup
from pydantic import BaseModel, Field, ValidationError, field_validator

# The ledger stores the encrypted vote as a 32-bit unsigned integer.
MAX_VOTE_VALUE = 2**32 - 1


def sanitize_html(text: str) -> str:
    """Removes HTML tags from the given text."""
    return BeautifulSoup(text, "html.parser").get_text()


def format_pydantic_errors(
    e: ValidationError, field_mapping: dict[str, str] | None = None
) -> tuple[str | None, dict[str, str]]:
    """
    Cleans Pydantic message prefixes and maps model fields to request field names.
    Returns (global_error_msg, field_errors_dict)
    """

    field_errors: dict[str, str] = {}
    global_errors: list[str] = []

    for err in e.errors():
        loc = [part for part in err["loc"] if part != "body"]
        msg = err["msg"]

        msg = msg.replace("Value error, ", "")
        msg = msg.replace("String should have ", "")
        msg = msg.replace("Input should be ", "")

        if loc:
            field_name = str(loc[0])
            if field_mapping and field_name in field_mapping:
                field_name = field_mapping[field_name]

            if field_name not in field_errors:
                field_errors[field_name] = msg
        else:
            global_errors.append(msg)

    error_msg = "; ".join(global_errors) if global_errors else None
    return error_msg, field_errors


class WalletSession(BaseModel):
    """The wallet connected by the participant, if any."""

    address: str | None = None

    @property
    def is_connected(self) -> bool:
        return bool(self.address)


class VoteCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1, max_length=2000)
    vote_value: int = Field(..., ge=0, le=MAX_VOTE_VALUE)

    @field_validator("title", "description")
    @classmethod
    def strip_markup(cls, v: str) -> str:
        cleaned = sanitize_html(v).strip()
        if not cleaned:
            raise ValueError("must not be empty")
        return cleaned


class VoteRecord(BaseModel):
    """One proposal as read back from the ledger."""

    id: str
    title: str
    description: str
    creator_address: str
    created_at: int
    public_vote_count: int = 0
    encrypted_value_handle: str | None = None
    is_verified: bool = False
    # Only meaningful once is_verified is True.
    revealed_value: int = 0


class VoteStats(BaseModel):
    total_count: int = 0
    verified_count: int = 0
    average_public_participation: float = 0.0


class ChartSeries(BaseModel):
    labels: list[str] = Field(default_factory=list)
    values: list[int] = Field(default_factory=list)


class StatusKind(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class TransactionStatus(BaseModel):
    kind: StatusKind = StatusKind.IDLE
    message: str = ""
    issued_at: float = 0.0
    expires_at: float | None = None

    @property
    def visible(self) -> bool:
        return self.kind != StatusKind.IDLE


# --- Gateway exchange models ---


class ProposalData(BaseModel):
    title: str
    description: str
    public_vote_count: int
    timestamp: int
    creator: str
    is_verified: bool
    revealed_value: int


class EncryptedInput(BaseModel):
    """External ciphertext handle plus the proof binding it to contract and caller."""

    ciphertext: bytes
    proof: bytes


class TransactionReceipt(BaseModel):
    tx_hash: str
    block_number: int
    status: int = 1


class DecryptionResult(BaseModel):
    clear_values: dict[str, int]
    receipt: TransactionReceipt | None = None


SubmitProof = Callable[[bytes, bytes], Awaitable[TransactionReceipt]]
