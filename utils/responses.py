from typing import Optional

from fastapi.responses import JSONResponse

from services.results import ServiceResult


def error_response(error: str, status: int = 400, code: Optional[str] = None, headers: Optional[dict] = None):
    content = {"error": error}
    if code:
        content["code"] = code
    return JSONResponse(status_code=status, content=content, headers=headers)


def result_error_response(result: ServiceResult):
    return error_response(result.error, status=result.status_code, code=result.code)
