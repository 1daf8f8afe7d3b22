MIN_TICKET_LENGTH = 6
FALLBACK_TICKET_MIN_LENGTH = 8

# Amount policy, tuned for metro fare tickets (fares well below 100).
CURRENCY_MERGE_BAND = (200.0, 230.0)
CURRENCY_MERGE_OFFSET = 200.0
MISSING_DECIMAL_THRESHOLD = 100.0

EMISSIONS_CEILING = 2.0
EMISSIONS_UNIT = "g CO2"

TWO_DIGIT_YEAR_PIVOT = 70
EPOCH_YEAR_RANGE = (2000, 2100)
EPOCH_MILLIS_THRESHOLD = 1e12

TICKET_LABELS = (
    "ticket no",
    "ticket number",
    "bill no",
    "bill number",
    "invoice no",
    "receipt no",
    "ticket",
    "bill",
)
AMOUNT_LABELS = ("fare", "amount", "total")
DATE_LABELS = ("date", "dated")
ORIGIN_LABELS = ("from", "source")
DESTINATION_LABELS = ("to", "destination")

# Word-level fixes applied to labels after lowercasing.
LABEL_FIXES = {
    "tickat": "ticket",
    "tlcket": "ticket",
    "t1cket": "ticket",
    "tiket": "ticket",
    "n0": "no",
    "nos": "no",
    "nurnber": "number",
    "numbr": "number",
    "fane": "fare",
    "farc": "fare",
    "dale": "date",
    "dt": "date",
    "frorn": "from",
    "fr0m": "from",
    "t0": "to",
    "arnount": "amount",
    "amt": "amount",
    "tota1": "total",
    "bi11": "bill",
    "invo1ce": "invoice",
    "src": "source",
    "dest": "destination",
}

# Uppercase lines shorter than this that contain one of the words are labels, not places.
LABEL_KEYWORDS = (
    "DATE", "FROM", "TO", "FARE", "TICKET", "VALID", "PLATFORM",
    "INR", "RS", "AMOUNT", "TOTAL", "BILL", "INVOICE",
)
LABEL_KEYWORD_MAX_LENGTH = 10
LOCATION_STOPWORDS = ("METRO", "CORPORATION", "LIMITED", "LTD", "THANK", "JOURNEY", "WELCOME")

# Labels written back onto orphan lines.
ORPHAN_LABELS = {
    "origin": "From",
    "destination": "To",
    "date": "Date",
    "amount": "Fare",
}

UNKNOWN_LOCATION = "Unknown"
OCR_FAILED_MARKER = "OCR Failed"
QR_ONLY_MARKER = "QR Only"
QR_ONLY_OCR_FAILED_MARKER = "QR Only (OCR Failed)"
PLACEHOLDER_TICKET_PREFIX = "BILL"
MOCK_TICKET_PREFIX = "MOCK"

DEFAULT_STATION_CODES = {}
STATIONS_ENV_VAR = "FARESCAN_STATIONS"

DISTANCE_PER_BILL_KM = 50
CO2_CHART_POINTS = 6

OCR_LANG = "eng"
OCR_BASE_CONFIG = "--oem 3 --psm 6"
OCR_MIN_WORDS = 15
PDF_RENDER_RESOLUTION = 300
