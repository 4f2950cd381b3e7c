import os, logging

_debug = bool(int(os.getenv("MFA_DEBUG", "0")))
_level = logging.DEBUG if _debug else logging.INFO

_root = logging.getLogger("mfa")
_root.setLevel(_level)
_root.propagate = False

_h = logging.StreamHandler()
_h.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
_root.addHandler(_h)

_extra_handlers: list[logging.Handler] = []


def attach(handler: logging.Handler):
    """Attach a global handler (e.g. pytest's caplog handler)."""
    if handler not in _extra_handlers:
        _extra_handlers.append(handler)
        _root.addHandler(handler)


def detach(handler: logging.Handler):
    if handler in _extra_handlers:
        _extra_handlers.remove(handler)
        _root.removeHandler(handler)


def get(subname: str | None = None) -> logging.Logger:
    # sub-loggers hand their records to "mfa", which stops propagation
    name = "mfa" if subname is None else f"mfa.{subname}"
    logger = logging.getLogger(name)
    logger.setLevel(_level)
    return logger


def set_level(level: int | str):
    global _level
    _root.setLevel(level)
    _level = _root.level
    for name in get_package_loggers():
        logging.getLogger(name).setLevel(_level)


def enable(*subs):
    for s in subs:
        get(s).disabled = False


def disable(*subs):
    for s in subs:
        get(s).disabled = True


def get_package_loggers():
    return [
        name for name in logging.Logger.manager.loggerDict
        if name.startswith("mfa.")
           and isinstance(logging.Logger.manager.loggerDict[name], logging.Logger)
    ]
