"""错误响应映射

MarketplaceError.code -> HTTP 状态码，响应体统一为
{"error": {"code": ..., "message": ...}}，UI 据 code 区分重试与终止提示。
"""

from campusgig.core.exceptions import MarketplaceError
from starlette.responses import JSONResponse

_STATUS_BY_CODE: dict[str, int] = {
    "NOT_FOUND": 404,
    "INVALID_AMOUNT": 400,
    "MISSING_REASON": 400,
    "INVALID_REVIEW": 400,
    "INSUFFICIENT_FUNDS": 402,
    "SELF_ACCEPTANCE": 403,
    "NOT_PERFORMER": 403,
    "NOT_TASK_PARTICIPANT": 403,
    "ALREADY_ACCEPTED": 409,
    "INVALID_TRANSITION": 409,
    "STORE_UNAVAILABLE": 503,
}


def error_response(error: MarketplaceError) -> JSONResponse:
    """MarketplaceError 转换为 JSON 错误响应"""
    return error_body(
        _STATUS_BY_CODE.get(error.code, 500),
        error.code,
        error.message,
    )


def error_body(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
            }
        },
    )
