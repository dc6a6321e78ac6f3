"""
本地设置存储（键值对，JSON文件）
保存 api_key、selected_model 等用户设置
"""
import json
from pathlib import Path
from typing import Any, Dict, Optional

from config import settings
from logs import setup_logger

logger = setup_logger(__name__)


class SettingsStore:
    """JSON键值存储：set 只改内存，save 才落盘"""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.SETTINGS_STORE_PATH)
        self._data: Dict[str, Any] = {}
        self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                self._data = data
            else:
                logger.warning(f"设置文件格式无效，已忽略: {self.path}")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"读取设置文件失败: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any):
        self._data[key] = value

    def save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, ensure_ascii=False, indent=2)
        tmp_path.replace(self.path)
        logger.info(f"设置已保存: {self.path}")
