"""
Authored signature field maps.

Coordinates are fractions of the page (top-left origin) measured on the
vendor template editor. Contract pages are authored against a 23-page
contract; booking confirmation and disclaimer fields are on page 1 of their
own document.
"""
from typing import Dict, List, Optional

from solarsign.models import CalculatorType, FieldAnchor, FieldArea, FieldType, SignatureField

CONTRACT_BASELINE_PAGES = 23
SIGNER_ROLE = "Signer1"


def _field(
    name: str,
    field_type: FieldType,
    page: int,
    x: float,
    y: float,
    w: float,
    h: float,
    required: bool = True,
    anchor: FieldAnchor = FieldAnchor.PRIMARY,
) -> SignatureField:
    return SignatureField(
        name=name,
        type=field_type,
        role=SIGNER_ROLE,
        required=required,
        anchor=anchor,
        areas=[FieldArea(page=page, x=x, y=y, w=w, h=h)],
    )


FLUX_CONTRACT_FIELDS: List[SignatureField] = [
    _field("Signature - Page 6", FieldType.SIGNATURE, 6,
           0.4224390243902439, 0.8848124374300689, 0.2429268292682927, 0.05113452967315257),
    _field("Signature - Page 19", FieldType.SIGNATURE, 19,
           0.335609756097561, 0.7278282780708365, 0.464390243902439, 0.02938960060286355),
    _field("Signature - Page 21 (Left)", FieldType.SIGNATURE, 21,
           0.3092682926829268, 0.7313842313489073, 0.2243902439024391, 0.06028636021100231),
    _field("Signature - Page 21 (Right)", FieldType.SIGNATURE, 21,
           0.5404878048780488, 0.7306306518462697, 0.2604878048780488, 0.06254709871891484),
    _field("Signature - Page 23", FieldType.SIGNATURE, 23,
           0.1941463414634146, 0.5111241976326483, 0.3082926829268293, 0.04898266767143933),
]

OFF_PEAK_CONTRACT_FIELDS: List[SignatureField] = [
    _field("Signature - Page 6", FieldType.SIGNATURE, 6,
           0.4780487804878049, 0.8754961427477769, 0.2439024390243902, 0.04386068198944992),
    _field("Signature - Page 19", FieldType.SIGNATURE, 19,
           0.3346341463414634, 0.6974142803315749, 0.4653658536585366, 0.03240391861341374),
    _field("Signature - Page 21 (Left)", FieldType.SIGNATURE, 21,
           0.3063414634146341, 0.7062452901281085, 0.2263414634146342, 0.05124340617935186),
    _field("Signature - Page 21 (Right)", FieldType.SIGNATURE, 21,
           0.5395121951219513, 0.705491710625471, 0.2604878048780488, 0.05124340617935186),
    _field("Signature - Page 23", FieldType.SIGNATURE, 23,
           0.2, 0.4957846646571213, 0.3326829268292683, 0.0452147701582517),
]

# Booking confirmation appended after the contract; page is set by the mapper
MERGED_BOOKING_CONFIRMATION_FIELDS: List[SignatureField] = [
    _field("Booking Signature", FieldType.SIGNATURE, 1,
           0.3638886142240891, 0.6804700876227533, 0.2926829268292683, 0.03519668737060044,
           anchor=FieldAnchor.SECONDARY),
    _field("Full Name", FieldType.TEXT, 1,
           0.3873007373062174, 0.7563829362475439, 0.2829268292682927, 0.030303030303030304,
           anchor=FieldAnchor.SECONDARY),
    _field("Date Signed", FieldType.DATE, 1,
           0.3265432098765432, 0.8333333333333334, 0.24691358024691357, 0.030303030303030304,
           anchor=FieldAnchor.SECONDARY),
]

BOOKING_CONFIRMATION_FIELDS: List[SignatureField] = [
    _field("Signature", FieldType.SIGNATURE, 1,
           0.3638886142240891, 0.6804700876227533, 0.2926829268292683, 0.03519668737060044),
    _field("Full Name", FieldType.TEXT, 1,
           0.3873007373062174, 0.7563829362475439, 0.2829268292682927, 0.03174603174603174),
    _field("Date Signed", FieldType.DATE, 1,
           0.1921951219512195, 0.8313780179757592, 0.2809756990758384, 0.03036576949620429),
]

DISCLAIMER_FIELDS: List[SignatureField] = [
    _field("Checkbox 1", FieldType.CHECKBOX, 1,
           0.1229268292682927, 0.3898665746491833, 0.03333333333333333, 0.02357948010121923,
           required=False),
    _field("Checkbox 2", FieldType.CHECKBOX, 1,
           0.1229268292682927, 0.4492178513917645, 0.03333333333333333, 0.02357948010121923,
           required=False),
    _field("Installers Name", FieldType.TEXT, 1,
           0.2461787823932927, 0.1555095327731409, 0.2308943883384146, 0.01656314699792963),
    _field("Customer Name", FieldType.TEXT, 1,
           0.6390243902439025, 0.1555095327731409, 0.2328455483041159, 0.01518288474810214),
    _field("Unit rate figures p per kWh", FieldType.TEXT, 1,
           0.6286128048780488, 0.2392403289608416, 0.09626030154344511, 0.01472280435186982,
           required=False),
    _field("Annual Grid Consumption - figure 2 kWh", FieldType.TEXT, 1,
           0.2448780487804878, 0.409477828863656, 0.1001625321551067, 0.01426263971111541,
           required=False),
    _field("Annual Electricity Spend - amount pounds", FieldType.TEXT, 1,
           0.2955792682926829, 0.4701919656811494, 0.08781927293794833, 0.01357604941217505,
           required=False),
    _field("Standing Charge - per day", FieldType.TEXT, 1,
           0.6559146341463414, 0.4681224872543842, 0.09919729250210818, 0.01702749913457491,
           required=False),
    _field("Utility Bill Reason", FieldType.TEXT, 1,
           0.1207164634146341, 0.6479946538473975, 0.7562204649390244, 0.03244189149844723),
    _field("Customer Name (Signature Block)", FieldType.TEXT, 1,
           0.1735677132955412, 0.8027460007440477, 0.298101494021532, 0.02009990052406829),
    _field("Date Signed", FieldType.DATE, 1,
           0.1655917432831555, 0.8341300337786836, 0.297104521960747, 0.02009990052406829),
    _field("Signature", FieldType.SIGNATURE, 1,
           0.1810451600609756, 0.8665719252771308, 0.2861375762195122, 0.01904204206025706),
]

# Prefill keys accepted for the disclaimer (request key -> field name)
DISCLAIMER_VALUE_FIELDS: Dict[str, str] = {
    "unitRate": "Unit rate figures p per kWh",
    "annualGridConsumption": "Annual Grid Consumption - figure 2 kWh",
    "annualElectricitySpend": "Annual Electricity Spend - amount pounds",
    "standingCharge": "Standing Charge - per day",
    "utilityBillReason": "Utility Bill Reason",
}

_CONTRACT_FIELDS: Dict[CalculatorType, List[SignatureField]] = {
    CalculatorType.FLUX: FLUX_CONTRACT_FIELDS,
    CalculatorType.OFF_PEAK: OFF_PEAK_CONTRACT_FIELDS,
}


def contract_fields(calculator_type: Optional[CalculatorType] = None) -> List[SignatureField]:
    """Contract signature fields for a calculator type (flux when unknown)."""
    return list(_CONTRACT_FIELDS.get(calculator_type or CalculatorType.FLUX, FLUX_CONTRACT_FIELDS))


def contract_and_booking_fields(calculator_type: Optional[CalculatorType] = None) -> List[SignatureField]:
    """Fields for a contract with the booking confirmation appended, before offset correction."""
    return contract_fields(calculator_type) + list(MERGED_BOOKING_CONFIRMATION_FIELDS)
