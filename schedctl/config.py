DEFAULT_CONFIG = {
    "max_concurrent": "10",
    "timeout_seconds": "20",
    "strict_dependencies": "false",
}

ALLOWED_CONFIG_KEYS = set(DEFAULT_CONFIG.keys())

TRUE_VALUES = {"1", "true", "yes", "on"}


def as_bool(value) -> bool:
    return str(value).strip().lower() in TRUE_VALUES


def validate_config_value(key: str, value: str) -> str:
    """Normalize ``value`` for ``key``; raise ValueError if it is not usable."""
    value = str(value).strip()
    if key == "max_concurrent":
        if not value.isdigit() or int(value) < 1:
            raise ValueError("max_concurrent must be an integer >= 1")
    elif key == "timeout_seconds":
        try:
            if float(value) <= 0:
                raise ValueError
        except ValueError:
            raise ValueError("timeout_seconds must be a number > 0")
    elif key == "strict_dependencies":
        if value.lower() not in TRUE_VALUES | {"0", "false", "no", "off"}:
            raise ValueError("strict_dependencies must be true or false")
        value = "true" if as_bool(value) else "false"
    return value
