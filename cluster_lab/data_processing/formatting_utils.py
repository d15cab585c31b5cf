import re


def safe_filename(name: str) -> str:
    """Sanitize a string to be safe for use as a filename."""
    name = str(name)
    name = re.sub(r'[\\/:*?"<>|]', '_', name)
    name = re.sub(r'\s+', '_', name)
    name = re.sub(r'_+', '_', name)
    return name.strip('_')


def safe_sheet_name(name: str) -> str:
    """Excel sheet names: at most 31 chars, no []:*?/\\ characters."""
    cleaned = re.sub(r'[\[\]:*?/\\]', '_', str(name))
    return cleaned[:31] or "Sheet1"
