"""Target group errors: validation failures and wrapped ELBv2 API errors."""

from botocore.exceptions import ClientError


class TargetGroupValidationError(ValueError):
    """Invalid target group configuration, raised before any remote call."""

    def __init__(self, prop: str, reason: str) -> None:
        super().__init__(f"{prop}: {reason}" if prop else reason)
        self.prop = prop
        self.reason = reason


class TargetGroupApiError(RuntimeError):
    """ELBv2 call failed; message names the operation, cause is the ClientError."""


def aws_error_code(err: BaseException) -> str:
    """Return the AWS error code of a ClientError, or "" for anything else."""
    if isinstance(err, ClientError):
        return err.response.get("Error", {}).get("Code", "")
    return ""


def is_aws_error(err: BaseException, code: str, message: str = "") -> bool:
    """True when err is a ClientError with this code and (optionally) message substring."""
    if aws_error_code(err) != code:
        return False
    if not message:
        return True
    if isinstance(err, ClientError):
        return message in err.response.get("Error", {}).get("Message", "")
    return False
