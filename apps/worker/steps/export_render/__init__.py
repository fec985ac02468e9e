from .rx_measure import HeightMeasurementAdapter, measure_page_inputs
from .rx_pdf import generate_prescription_pdf

__all__ = [
    "HeightMeasurementAdapter",
    "measure_page_inputs",
    "generate_prescription_pdf",
]
