"""Money and locale formatting.

Every supported currency maps to exactly one display entry in ``CURRENCIES``.
The table is static: formatting never touches the database, the process
locale, or the network, so the same (amount, currency) pair always renders
the same string.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import List, NamedTuple, Optional, Union

from insurance_claims.config import get_default_display_currency
from insurance_claims.errors import InvalidAmount, UnknownCurrency

CENTS = Decimal("0.01")


class Currency(str, Enum):
    # Major
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    CNY = "CNY"
    CHF = "CHF"
    CAD = "CAD"
    AUD = "AUD"
    NZD = "NZD"
    INR = "INR"
    # Africa
    ZAR = "ZAR"
    NGN = "NGN"
    EGP = "EGP"
    KES = "KES"
    XOF = "XOF"
    XAF = "XAF"
    MAD = "MAD"
    GHS = "GHS"
    ETB = "ETB"
    TZS = "TZS"
    UGX = "UGX"
    AOA = "AOA"
    BWP = "BWP"
    ZMW = "ZMW"
    RWF = "RWF"
    MUR = "MUR"
    TND = "TND"
    DZD = "DZD"
    LYD = "LYD"
    BIF = "BIF"
    CVE = "CVE"
    KMF = "KMF"
    CDF = "CDF"
    DJF = "DJF"
    ERN = "ERN"
    SZL = "SZL"
    GMD = "GMD"
    GNF = "GNF"
    LSL = "LSL"
    LRD = "LRD"
    MGA = "MGA"
    MWK = "MWK"
    MRU = "MRU"
    MZN = "MZN"
    NAD = "NAD"
    STN = "STN"
    SCR = "SCR"
    SLE = "SLE"
    SOS = "SOS"
    SSP = "SSP"
    SDG = "SDG"
    ZWL = "ZWL"
    # Middle East
    SAR = "SAR"
    AED = "AED"
    QAR = "QAR"
    KWD = "KWD"
    BHD = "BHD"
    OMR = "OMR"
    JOD = "JOD"
    ILS = "ILS"
    # Latin America
    MXN = "MXN"
    BRL = "BRL"
    ARS = "ARS"
    CLP = "CLP"
    COP = "COP"
    PEN = "PEN"
    # Asia-Pacific
    SGD = "SGD"
    HKD = "HKD"
    KRW = "KRW"
    THB = "THB"
    MYR = "MYR"
    IDR = "IDR"
    PHP = "PHP"
    VND = "VND"
    PKR = "PKR"
    BDT = "BDT"


class SymbolPosition(str, Enum):
    PREFIX = "prefix"                # $1,234.56
    PREFIX_SPACED = "prefix_spaced"  # KSh 1,234.56
    SUFFIX_SPACED = "suffix_spaced"  # 1.234,56 €


class CurrencyInfo(NamedTuple):
    code: str
    name: str
    symbol: str
    locale: str
    region: str
    position: SymbolPosition
    group_separator: str = ","
    decimal_separator: str = "."


P = SymbolPosition.PREFIX
S = SymbolPosition.PREFIX_SPACED
X = SymbolPosition.SUFFIX_SPACED

MAJOR = "Major"
AFRICA = "Africa"
MIDDLE_EAST = "Middle East"
LATAM = "Latin America"
ASIA_PACIFIC = "Asia-Pacific"

# Locales whose digit grouping differs from "1,234.56".
_SEPARATORS = {
    "de-DE": (".", ","),
    "de-CH": ("'", "."),
    "fr-SN": (" ", ","),
    "fr-CM": (" ", ","),
    "fr-BI": (" ", ","),
    "fr-KM": (" ", ","),
    "fr-CD": (" ", ","),
    "fr-DJ": (" ", ","),
    "fr-GN": (" ", ","),
    "pt-AO": (" ", ","),
    "pt-BR": (".", ","),
    "pt-CV": (" ", ","),
    "pt-MZ": (" ", ","),
    "pt-ST": (" ", ","),
    "es-AR": (".", ","),
    "es-CL": (".", ","),
    "es-CO": (".", ","),
    "id-ID": (".", ","),
    "vi-VN": (".", ","),
}


def _entry(code, name, symbol, locale, region, position):
    group, decimal_sep = _SEPARATORS.get(locale, (",", "."))
    return CurrencyInfo(code, name, symbol, locale, region, position, group, decimal_sep)


CURRENCIES = {
    Currency.USD: _entry("USD", "US Dollar", "$", "en-US", MAJOR, P),
    Currency.EUR: _entry("EUR", "Euro", "€", "de-DE", MAJOR, X),
    Currency.GBP: _entry("GBP", "British Pound", "£", "en-GB", MAJOR, P),
    Currency.JPY: _entry("JPY", "Japanese Yen", "¥", "ja-JP", MAJOR, P),
    Currency.CNY: _entry("CNY", "Chinese Yuan", "¥", "zh-CN", MAJOR, P),
    Currency.CHF: _entry("CHF", "Swiss Franc", "Fr", "de-CH", MAJOR, S),
    Currency.CAD: _entry("CAD", "Canadian Dollar", "C$", "en-CA", MAJOR, P),
    Currency.AUD: _entry("AUD", "Australian Dollar", "A$", "en-AU", MAJOR, P),
    Currency.NZD: _entry("NZD", "New Zealand Dollar", "NZ$", "en-NZ", MAJOR, P),
    Currency.INR: _entry("INR", "Indian Rupee", "₹", "en-IN", MAJOR, P),

    Currency.ZAR: _entry("ZAR", "South African Rand", "R", "en-ZA", AFRICA, S),
    Currency.NGN: _entry("NGN", "Nigerian Naira", "₦", "en-NG", AFRICA, P),
    Currency.EGP: _entry("EGP", "Egyptian Pound", "E£", "ar-EG", AFRICA, P),
    Currency.KES: _entry("KES", "Kenyan Shilling", "KSh", "en-KE", AFRICA, S),
    Currency.XOF: _entry("XOF", "West African CFA Franc", "CFA", "fr-SN", AFRICA, X),
    Currency.XAF: _entry("XAF", "Central African CFA Franc", "FCFA", "fr-CM", AFRICA, X),
    Currency.MAD: _entry("MAD", "Moroccan Dirham", "DH", "ar-MA", AFRICA, S),
    Currency.GHS: _entry("GHS", "Ghanaian Cedi", "₵", "en-GH", AFRICA, P),
    Currency.ETB: _entry("ETB", "Ethiopian Birr", "Br", "am-ET", AFRICA, S),
    Currency.TZS: _entry("TZS", "Tanzanian Shilling", "TSh", "sw-TZ", AFRICA, S),
    Currency.UGX: _entry("UGX", "Ugandan Shilling", "USh", "en-UG", AFRICA, S),
    Currency.AOA: _entry("AOA", "Angolan Kwanza", "Kz", "pt-AO", AFRICA, S),
    Currency.BWP: _entry("BWP", "Botswana Pula", "P", "en-BW", AFRICA, P),
    Currency.ZMW: _entry("ZMW", "Zambian Kwacha", "ZK", "en-ZM", AFRICA, S),
    Currency.RWF: _entry("RWF", "Rwandan Franc", "FRw", "rw-RW", AFRICA, S),
    Currency.MUR: _entry("MUR", "Mauritian Rupee", "₨", "en-MU", AFRICA, P),
    Currency.TND: _entry("TND", "Tunisian Dinar", "DT", "ar-TN", AFRICA, S),
    Currency.DZD: _entry("DZD", "Algerian Dinar", "DA", "ar-DZ", AFRICA, S),
    Currency.LYD: _entry("LYD", "Libyan Dinar", "LD", "ar-LY", AFRICA, S),
    Currency.BIF: _entry("BIF", "Burundian Franc", "FBu", "fr-BI", AFRICA, X),
    Currency.CVE: _entry("CVE", "Cape Verdean Escudo", "Esc", "pt-CV", AFRICA, X),
    Currency.KMF: _entry("KMF", "Comorian Franc", "CF", "fr-KM", AFRICA, X),
    Currency.CDF: _entry("CDF", "Congolese Franc", "FC", "fr-CD", AFRICA, X),
    Currency.DJF: _entry("DJF", "Djiboutian Franc", "Fdj", "fr-DJ", AFRICA, X),
    Currency.ERN: _entry("ERN", "Eritrean Nakfa", "Nfk", "ti-ER", AFRICA, S),
    Currency.SZL: _entry("SZL", "Swazi Lilangeni", "L", "en-SZ", AFRICA, S),
    Currency.GMD: _entry("GMD", "Gambian Dalasi", "D", "en-GM", AFRICA, S),
    Currency.GNF: _entry("GNF", "Guinean Franc", "FG", "fr-GN", AFRICA, X),
    Currency.LSL: _entry("LSL", "Lesotho Loti", "L", "en-LS", AFRICA, S),
    Currency.LRD: _entry("LRD", "Liberian Dollar", "L$", "en-LR", AFRICA, P),
    Currency.MGA: _entry("MGA", "Malagasy Ariary", "Ar", "mg-MG", AFRICA, S),
    Currency.MWK: _entry("MWK", "Malawian Kwacha", "MK", "en-MW", AFRICA, S),
    Currency.MRU: _entry("MRU", "Mauritanian Ouguiya", "UM", "ar-MR", AFRICA, S),
    Currency.MZN: _entry("MZN", "Mozambican Metical", "MT", "pt-MZ", AFRICA, X),
    Currency.NAD: _entry("NAD", "Namibian Dollar", "N$", "en-NA", AFRICA, P),
    Currency.STN: _entry("STN", "São Tomé and Príncipe Dobra", "Db", "pt-ST", AFRICA, X),
    Currency.SCR: _entry("SCR", "Seychellois Rupee", "SR", "en-SC", AFRICA, S),
    Currency.SLE: _entry("SLE", "Sierra Leonean Leone", "Le", "en-SL", AFRICA, S),
    Currency.SOS: _entry("SOS", "Somali Shilling", "Sh.So.", "so-SO", AFRICA, S),
    Currency.SSP: _entry("SSP", "South Sudanese Pound", "SS£", "en-SS", AFRICA, P),
    Currency.SDG: _entry("SDG", "Sudanese Pound", "SDG", "ar-SD", AFRICA, S),
    Currency.ZWL: _entry("ZWL", "Zimbabwean Dollar", "Z$", "en-ZW", AFRICA, P),

    Currency.SAR: _entry("SAR", "Saudi Riyal", "SR", "ar-SA", MIDDLE_EAST, S),
    Currency.AED: _entry("AED", "UAE Dirham", "AED", "ar-AE", MIDDLE_EAST, S),
    Currency.QAR: _entry("QAR", "Qatari Riyal", "QR", "ar-QA", MIDDLE_EAST, S),
    Currency.KWD: _entry("KWD", "Kuwaiti Dinar", "KD", "ar-KW", MIDDLE_EAST, S),
    Currency.BHD: _entry("BHD", "Bahraini Dinar", "BD", "ar-BH", MIDDLE_EAST, S),
    Currency.OMR: _entry("OMR", "Omani Rial", "OMR", "ar-OM", MIDDLE_EAST, S),
    Currency.JOD: _entry("JOD", "Jordanian Dinar", "JD", "ar-JO", MIDDLE_EAST, S),
    Currency.ILS: _entry("ILS", "Israeli New Shekel", "₪", "he-IL", MIDDLE_EAST, P),

    Currency.MXN: _entry("MXN", "Mexican Peso", "Mex$", "es-MX", LATAM, P),
    Currency.BRL: _entry("BRL", "Brazilian Real", "R$", "pt-BR", LATAM, S),
    Currency.ARS: _entry("ARS", "Argentine Peso", "AR$", "es-AR", LATAM, S),
    Currency.CLP: _entry("CLP", "Chilean Peso", "CLP$", "es-CL", LATAM, S),
    Currency.COP: _entry("COP", "Colombian Peso", "COL$", "es-CO", LATAM, S),
    Currency.PEN: _entry("PEN", "Peruvian Sol", "S/", "es-PE", LATAM, S),

    Currency.SGD: _entry("SGD", "Singapore Dollar", "S$", "en-SG", ASIA_PACIFIC, P),
    Currency.HKD: _entry("HKD", "Hong Kong Dollar", "HK$", "zh-HK", ASIA_PACIFIC, P),
    Currency.KRW: _entry("KRW", "South Korean Won", "₩", "ko-KR", ASIA_PACIFIC, P),
    Currency.THB: _entry("THB", "Thai Baht", "฿", "th-TH", ASIA_PACIFIC, P),
    Currency.MYR: _entry("MYR", "Malaysian Ringgit", "RM", "ms-MY", ASIA_PACIFIC, P),
    Currency.IDR: _entry("IDR", "Indonesian Rupiah", "Rp", "id-ID", ASIA_PACIFIC, S),
    Currency.PHP: _entry("PHP", "Philippine Peso", "₱", "en-PH", ASIA_PACIFIC, P),
    Currency.VND: _entry("VND", "Vietnamese Dong", "₫", "vi-VN", ASIA_PACIFIC, X),
    Currency.PKR: _entry("PKR", "Pakistani Rupee", "Rs", "en-PK", ASIA_PACIFIC, S),
    Currency.BDT: _entry("BDT", "Bangladeshi Taka", "৳", "bn-BD", ASIA_PACIFIC, P),
}

Amount = Union[Decimal, int, str, float]


def to_decimal(value: Amount) -> Decimal:
    """Convert user or database input to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise InvalidAmount(f"Invalid amount: {value!r}")
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidAmount(f"Invalid amount: {value!r}") from None
    if not result.is_finite():
        raise InvalidAmount(f"Invalid amount: {value!r}")
    return result


def to_money(value: Amount) -> Decimal:
    """Round half-up to the minor unit (two places for every supported currency)."""
    try:
        return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # too many digits to hold at two places
        raise InvalidAmount(f"Amount out of range: {value!r}") from None


def to_exact_money(value: Amount) -> Decimal:
    """Like ``to_money`` but refuses to round: a third decimal place is an error."""
    money = to_money(value)
    if money != to_decimal(value):
        raise InvalidAmount(f"Amount {value!r} has more than two decimal places")
    return money


def parse_currency(currency) -> Currency:
    if isinstance(currency, Currency):
        return currency
    if not isinstance(currency, str):
        raise UnknownCurrency(currency)
    try:
        return Currency(currency.strip().upper())
    except ValueError:
        raise UnknownCurrency(currency) from None


def currency_info(currency) -> CurrencyInfo:
    return CURRENCIES[parse_currency(currency)]


def symbol_for(currency) -> str:
    return currency_info(currency).symbol


def supported_currencies(region: Optional[str] = None) -> List[CurrencyInfo]:
    return [info for info in CURRENCIES.values() if region is None or info.region == region]


def format_money(amount: Amount, currency) -> str:
    info = currency_info(currency)
    value = to_money(amount)
    sign = "-" if value < 0 else ""

    digits = format(abs(value), ",.2f")
    if (info.group_separator, info.decimal_separator) != (",", "."):
        whole, frac = digits.split(".")
        digits = whole.replace(",", info.group_separator) + info.decimal_separator + frac

    if info.position is SymbolPosition.PREFIX:
        body = f"{info.symbol}{digits}"
    elif info.position is SymbolPosition.PREFIX_SPACED:
        body = f"{info.symbol} {digits}"
    else:
        body = f"{digits} {info.symbol}"
    return sign + body


def resolve_display_currency(preference: Optional[str]) -> Currency:
    """Pick the currency a tenant or user wants amounts shown in.

    A missing or unrecognised preference falls back to the configured default.
    Only for display preferences: a transaction's own currency goes through
    ``parse_currency`` and fails loudly instead.
    """
    if preference:
        try:
            return parse_currency(preference)
        except UnknownCurrency:
            pass
    return parse_currency(get_default_display_currency())
