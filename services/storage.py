import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from pydantic import ValidationError
from config import settings
from models.schemas import TravelParams
from utils.retry_helpers import VersionConflictError, store_update_retrying

logger = logging.getLogger(__name__)

# 키 상수
TRAVEL_PARAMS_KEY = "travel_params"

# 디렉터리별 락 (같은 디렉터리를 쓰는 저장소 인스턴스끼리 공유)
_locks: Dict[Path, threading.RLock] = {}
_locks_guard = threading.Lock()


def directory_lock(directory: Path) -> threading.RLock:
    """디렉터리 경로에 대응하는 프로세스 전역 락 반환 (없으면 생성)"""
    key = directory.resolve()
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
    return lock


class FileKeyValueStorage:
    """
    키 하나당 JSON 파일 하나를 쓰는 로컬 키-값 저장소

    쓰기는 임시 파일 작성 후 교체하는 방식이라 중간에 실패해도 이전 값이 남는다.
    """

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory or settings.storage_dir)
        self.lock = directory_lock(self.directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, self._path(key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


class TravelParamsStore:
    """
    여행 파라미터 저장소

    레코드 형식: {"version": n, "params": {...}}
    버전 envelope가 없는 이전 레코드(params 객체 그대로)는 version 0으로 읽는다.
    병합은 호출자 책임이며 save()는 레코드 전체를 덮어쓴다.
    """

    def __init__(self, storage: Optional[FileKeyValueStorage] = None, max_update_attempts: Optional[int] = None):
        self.storage = storage or FileKeyValueStorage()
        self.max_update_attempts = max_update_attempts or settings.store_update_max_attempts

    def _read_record(self) -> Tuple[int, Optional[TravelParams]]:
        raw = self.storage.get_item(TRAVEL_PARAMS_KEY)
        if raw is None:
            return 0, None

        data = json.loads(raw)
        if isinstance(data, dict) and "version" in data and "params" in data:
            return int(data["version"]), TravelParams.model_validate(data["params"])
        return 0, TravelParams.model_validate(data)

    def _write_record(self, version: int, params: TravelParams) -> None:
        record = {"version": version, "params": params.to_record()}
        self.storage.set_item(TRAVEL_PARAMS_KEY, json.dumps(record, ensure_ascii=False))

    def save(self, params: TravelParams) -> None:
        """
        여행 파라미터 저장 (기존 레코드를 덮어씀)

        실패해도 예외를 던지지 않고 로그만 남긴다.
        """
        try:
            with self.storage.lock:
                try:
                    version, _ = self._read_record()
                except (ValueError, ValidationError):
                    version = 0
                self._write_record(version + 1, params)
            logger.info("여행 정보가 저장되었습니다.")
        except Exception as e:
            logger.error(f"여행 정보 저장 실패: {str(e)}")

    def load(self) -> Optional[TravelParams]:
        """
        저장된 여행 파라미터 불러오기

        Returns:
            TravelParams, 레코드가 없거나 읽기/검증에 실패하면 None
        """
        try:
            _, params = self._read_record()
            return params
        except Exception as e:
            logger.error(f"여행 정보 불러오기 실패: {str(e)}")
            return None

    def load_versioned(self) -> Tuple[int, Optional[TravelParams]]:
        """(version, params) 반환. 레코드가 없거나 손상된 경우 (0, None)"""
        try:
            return self._read_record()
        except Exception as e:
            logger.error(f"여행 정보 불러오기 실패: {str(e)}")
            return 0, None

    def compare_and_swap(self, expected_version: int, params: TravelParams) -> int:
        """
        저장된 버전이 expected_version일 때만 기록

        Returns:
            새 버전 번호

        Raises:
            VersionConflictError: 그 사이에 다른 쓰기가 있었던 경우
        """
        with self.storage.lock:
            try:
                current_version, _ = self._read_record()
            except (ValueError, ValidationError):
                current_version = 0
            if current_version != expected_version:
                raise VersionConflictError(expected_version, current_version)
            self._write_record(expected_version + 1, params)
            return expected_version + 1

    def update_field(self, key: str, value: Any) -> None:
        """
        특정 파라미터만 업데이트 (다른 필드는 유지)

        Args:
            key: TravelParams 필드명 또는 camelCase 이름 (예: "travel_days", "travelDays")
            value: 새 값 (None이 아니면 문자열로 변환, 예: 3 -> "3")
        """
        field_name = _resolve_field(key)
        if value is not None:
            value = str(value)

        try:
            for attempt in store_update_retrying(self.max_update_attempts):
                with attempt:
                    version, current = self.load_versioned()
                    updated = (current or TravelParams()).model_copy(update={field_name: value})
                    # model_copy는 검증하지 않으므로 다시 검증
                    updated = TravelParams.model_validate(updated.model_dump())
                    self.compare_and_swap(version, updated)
            logger.info(f"{key} 정보가 업데이트되었습니다.")
        except Exception as e:
            logger.error(f"{key} 정보 업데이트 실패: {str(e)}")

    def clear(self) -> None:
        """여행 파라미터 삭제"""
        try:
            with self.storage.lock:
                self.storage.remove_item(TRAVEL_PARAMS_KEY)
            logger.info("여행 정보가 삭제되었습니다.")
        except Exception as e:
            logger.error(f"여행 정보 삭제 실패: {str(e)}")


def _resolve_field(key: str) -> str:
    if key in TravelParams.model_fields:
        return key
    for name, field in TravelParams.model_fields.items():
        if field.alias == key:
            return name
    raise ValueError(f"Unknown travel param: {key}")
