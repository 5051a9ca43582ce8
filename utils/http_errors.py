"""
HTTP failure classification for diagnostic logging.

Remote client operations degrade to empty results on failure; the kind of failure
(timeout, server error with body, no response, request setup, malformed body) only
reaches the log.
"""
import logging
from typing import Type, Tuple
import httpx
from pydantic import ValidationError

logger = logging.getLogger(__name__)


class ResponseDecodeError(Exception):
    """Server response body is not JSON or does not match the expected schema."""
    pass


# 응답을 받지 못한 경우 (연결 실패, 읽기/쓰기 실패 등)
NO_RESPONSE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)


def classify_http_error(exception: BaseException) -> str:
    """
    예외를 로그용 분류 문자열로 변환

    Returns:
        "timeout", "server_error", "no_response", "decode_error", "request_error" 중 하나
    """
    if isinstance(exception, httpx.TimeoutException):
        return "timeout"
    if isinstance(exception, httpx.HTTPStatusError):
        return "server_error"
    if isinstance(exception, NO_RESPONSE_EXCEPTIONS):
        return "no_response"
    if isinstance(exception, (ResponseDecodeError, ValidationError, ValueError)):
        return "decode_error"
    return "request_error"


def log_http_error(action: str, exception: BaseException, log: logging.Logger = logger) -> str:
    """
    실패한 요청의 진단 정보를 로그로 남김

    Args:
        action: 실패한 작업 설명 (예: "장소 검색")
        exception: 발생한 예외
        log: 사용할 로거 (호출 모듈의 로거)

    Returns:
        분류 문자열 (호출자는 이 값으로 동작을 바꾸지 않음)
    """
    kind = classify_http_error(exception)

    if kind == "timeout":
        log.error(f"{action} 실패: 요청 타임아웃 ({exception!r})")
    elif kind == "server_error":
        response = exception.response
        log.error(
            f"{action} 실패: 서버 응답 {response.status_code} - {response.text}"
        )
    elif kind == "no_response":
        log.error(f"{action} 실패: 응답 없음. 서버 연결 실패 ({exception!r})")
    elif kind == "decode_error":
        log.error(f"{action} 실패: 응답 형식 오류 ({exception})")
    else:
        log.error(f"{action} 실패: 요청 에러 ({exception!r})")

    return kind


def decode_json(response: httpx.Response) -> dict:
    """응답 본문을 JSON 객체로 파싱 (객체가 아니면 ResponseDecodeError)"""
    try:
        body = response.json()
    except ValueError as e:
        raise ResponseDecodeError(f"invalid JSON body: {e}") from e

    if not isinstance(body, dict):
        raise ResponseDecodeError(f"expected JSON object, got {type(body).__name__}")
    return body
