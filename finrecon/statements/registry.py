"""Parser selection for bank format profiles."""

from finrecon.utils.config import StatementConfig
from finrecon.utils.errors import sanitize_message
from finrecon.utils.logger import get_logger

from .base import BaseStatementParser
from .models import ParseResult
from .parsers.axis import AxisParser
from .parsers.generic import GenericParser
from .parsers.hdfc import HdfcParser
from .parsers.icici import IciciCreditCardParser, IciciCurrentParser, IciciSavingsParser
from .parsers.sbi import SbiParser
from .profile import BankFormatProfile

logger = get_logger(__name__)

PARSERS: dict[str, type[BaseStatementParser]] = {
    "icici_savings": IciciSavingsParser,
    "icici_current": IciciCurrentParser,
    "icici_credit_card": IciciCreditCardParser,
    "hdfc": HdfcParser,
    "sbi": SbiParser,
    "axis": AxisParser,
    "generic": GenericParser,
}

PARSER_REGISTRY: dict[tuple[str, str], type[BaseStatementParser]] = {
    ("icici", "savings"): IciciSavingsParser,
    ("icici", "salary"): IciciSavingsParser,
    ("icici", "current"): IciciCurrentParser,
    ("icici", "credit_card"): IciciCreditCardParser,
    ("hdfc", "savings"): HdfcParser,
    ("hdfc", "salary"): HdfcParser,
    ("hdfc", "current"): HdfcParser,
    ("sbi", "savings"): SbiParser,
    ("sbi", "current"): SbiParser,
    ("axis", "savings"): AxisParser,
    ("axis", "current"): AxisParser,
}


def get_parser_class(profile: BankFormatProfile) -> type[BaseStatementParser]:
    """Resolve the parser class for a profile.

    An explicit ``parser_config.parser`` key wins; otherwise the
    ``(bank_code, account_type)`` pair is looked up, falling back to
    ``GenericParser``.

    Raises:
        KeyError: If the profile names a parser that does not exist.
    """
    explicit = profile.parser_config.parser
    if explicit:
        try:
            return PARSERS[explicit.lower()]
        except KeyError:
            raise KeyError(f"Unknown parser key: {explicit}") from None

    parser_class = PARSER_REGISTRY.get(profile.key)
    if parser_class is None:
        logger.info(
            "No dedicated parser for %s/%s, using GenericParser", *profile.key
        )
        return GenericParser
    return parser_class


def get_parser(
    profile: BankFormatProfile, config: StatementConfig | None = None
) -> BaseStatementParser:
    return get_parser_class(profile)(profile, config)


def parse_statement(
    content: bytes,
    filename: str,
    profile: BankFormatProfile,
    config: StatementConfig | None = None,
) -> ParseResult:
    """Parse a bank statement file with the parser matching its profile.

    Args:
        content: Raw file bytes.
        filename: Original filename (the extension selects the reader).
        profile: Bank format profile for the export.
        config: Statement parsing limits.

    Returns:
        Transactions plus file-level errors and row-level warnings. A profile
        naming an unknown parser yields a file-level error.
    """
    try:
        parser = get_parser(profile, config)
    except KeyError as exc:
        logger.error("Cannot parse %s: %s", filename, exc.args[0])
        return ParseResult(errors=[sanitize_message(exc.args[0])])
    logger.info(
        "Parsing %s with %s (%s/%s)",
        filename,
        type(parser).__name__,
        profile.bank_code,
        profile.account_type,
    )
    return parser.parse(content, filename)
