"""
Message extraction for the failure logs of isolated passes.

Issue rules, setup signals, decoders and analysis parts each run under
their own ``try``; a failure is reduced to a message here, logged, and
the pass carries on with the remaining records.
"""


def get_error_message(error: BaseException | object) -> str:
    """Return a loggable message for *error*.

    An exception without text is reported by its class name, so
    ``KeyError()`` logs as ``"KeyError"``.  Anything that is not an
    exception is reported as ``"Unknown error"``.
    """
    if not isinstance(error, Exception):
        return "Unknown error"
    return str(error) or type(error).__name__
