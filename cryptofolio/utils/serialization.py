from decimal import Decimal


def convert_decimal(item):
    """
    Recursively turn Decimals into floats so calculation results serialize
    as JSON numbers. Dates and other values are left for FastAPI's encoder.
    """
    if isinstance(item, Decimal):
        return float(item)
    if isinstance(item, dict):
        return {key: convert_decimal(value) for key, value in item.items()}
    if isinstance(item, (list, tuple)):
        return [convert_decimal(subitem) for subitem in item]
    return item
