"""Bank format profiles and their YAML-backed registry.

A profile tells a statement parser how to read one bank export: which
physical columns hold which logical fields, how to find the header row,
which rows to skip and which date grammars to try.
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from finrecon.utils.errors import ProfileNotFoundError
from finrecon.utils.logger import get_logger

logger = get_logger(__name__)

ACCOUNT_TYPES: tuple[str, ...] = (
    "savings",
    "current",
    "credit_card",
    "salary",
    "fd_rd",
    "loan",
)
FILE_FORMATS: tuple[str, ...] = ("csv", "xlsx", "xls", "pdf")


class ParserConfig(BaseModel):
    """Parser tuning knobs. ``None`` means "use the parser's defaults"."""

    model_config = ConfigDict(frozen=True)

    header_indicators: tuple[str, ...] | None = None
    skip_patterns: tuple[str, ...] | None = None
    date_formats: tuple[str, ...] | None = None
    credit_indicators: tuple[str, ...] | None = None
    debit_indicators: tuple[str, ...] | None = None
    encoding: str = "utf-8"
    parser: str | None = None


class BankFormatProfile(BaseModel):
    """Immutable description of one bank export format."""

    model_config = ConfigDict(frozen=True)

    bank_code: str
    account_type: str
    file_format: str = "csv"
    bank_name: str | None = None
    description: str | None = None
    column_mappings: dict[str, str] = Field(default_factory=dict)
    parser_config: ParserConfig = Field(default_factory=ParserConfig)

    @field_validator("bank_code")
    @classmethod
    def _lower_bank_code(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("account_type")
    @classmethod
    def _check_account_type(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ACCOUNT_TYPES:
            raise ValueError(f"Unknown account type: {value}")
        return value

    @field_validator("file_format")
    @classmethod
    def _check_file_format(cls, value: str) -> str:
        value = value.strip().lower().lstrip(".")
        if value not in FILE_FORMATS:
            raise ValueError(f"Unknown file format: {value}")
        return value

    @property
    def key(self) -> tuple[str, str]:
        return (self.bank_code, self.account_type)

    def mapping_for(self, logical_field: str) -> str | None:
        """Return the configured physical column for a logical field."""
        return self.column_mappings.get(logical_field)


class ProfileRegistry:
    """Bank format profiles loaded from a directory of YAML files.

    Each file describes one bank::

        bank_code: icici
        bank_name: ICICI Bank
        templates:
          - account_type: savings
            file_format: csv
            column_mappings: {date: Value Date}
            parser_config: {date_formats: ["%d/%m/%Y"]}

    Args:
        profiles_dir: Directory holding ``*.yaml``/``*.yml`` profile files.
    """

    def __init__(self, profiles_dir: Path | None = None) -> None:
        self.profiles: dict[tuple[str, str, str], BankFormatProfile] = {}
        if profiles_dir is not None:
            self.load_directory(profiles_dir)

    def load_directory(self, profiles_dir: Path) -> int:
        """Load every profile file in a directory.

        Args:
            profiles_dir: Directory to scan.

        Returns:
            Number of profiles loaded.
        """
        if not profiles_dir.is_dir():
            logger.debug("No profiles directory at %s", profiles_dir)
            return 0

        count = 0
        for path in sorted([*profiles_dir.glob("*.yaml"), *profiles_dir.glob("*.yml")]):
            count += self.load_file(path)
        logger.info("Loaded %d bank format profiles from %s", count, profiles_dir)
        return count

    def load_file(self, path: Path) -> int:
        """Load the profiles declared in a single YAML file.

        Invalid entries are logged and skipped.

        Args:
            path: Path to the YAML file.

        Returns:
            Number of profiles loaded from the file.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        templates = data.get("templates") or []
        count = 0
        for template in templates:
            try:
                profile = BankFormatProfile(
                    bank_code=data["bank_code"],
                    bank_name=data.get("bank_name"),
                    **template,
                )
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping invalid profile in %s: %s", path, exc)
                continue
            self.register(profile)
            count += 1
        return count

    def register(self, profile: BankFormatProfile) -> None:
        """Add or replace a profile."""
        key = (profile.bank_code, profile.account_type, profile.file_format)
        self.profiles[key] = profile

    def get(
        self,
        bank_code: str,
        account_type: str,
        file_format: str | None = None,
    ) -> BankFormatProfile:
        """Look up a profile.

        When ``file_format`` is omitted, or no profile exists for it, any
        profile for the bank/account-type pair is returned (CSV first).

        Raises:
            ProfileNotFoundError: If nothing is registered for the pair.
        """
        bank_code = bank_code.lower()
        account_type = account_type.lower()

        if file_format:
            profile = self.profiles.get((bank_code, account_type, file_format.lower().lstrip(".")))
            if profile is not None:
                return profile

        candidates = [
            p for (b, a, _), p in self.profiles.items() if b == bank_code and a == account_type
        ]
        if not candidates:
            raise ProfileNotFoundError(f"No profile for bank={bank_code} account_type={account_type}")
        candidates.sort(key=lambda p: FILE_FORMATS.index(p.file_format))
        return candidates[0]

    def __len__(self) -> int:
        return len(self.profiles)
