from enum import Enum


class VisitTag(str, Enum):
    NEW = "N"
    FOLLOWUP = "F"
    ZERO_BILLED = "Z"  # Registered without a bill


class Frequency(str, Enum):
    QD = "QD"
    BID = "BID"
    TID = "TID"
    QID = "QID"
    HS = "HS"
    PRN = "PRN"


class Timing(str, Enum):
    BEFORE_MEAL = "BEFORE_MEAL"
    AFTER_MEAL = "AFTER_MEAL"
    ANY = "ANY"


class ToothPosition(str, Enum):
    UL = "UL"  # Upper left
    UR = "UR"
    LL = "LL"
    LR = "LR"


class PatientSex(str, Enum):
    MALE = "M"
    FEMALE = "F"
    OTHER = "O"
    UNKNOWN = "U"


FREQUENCY_LABELS: dict[Frequency, str] = {
    Frequency.QD: "Once Daily",
    Frequency.BID: "Twice Daily",
    Frequency.TID: "Thrice Daily",
    Frequency.QID: "Four Times Daily",
    Frequency.HS: "At Bedtime",
    Frequency.PRN: "As Needed",
}

TIMING_LABELS: dict[Timing, str] = {
    Timing.BEFORE_MEAL: "before food",
    Timing.AFTER_MEAL: "After food",
    Timing.ANY: "",
}
