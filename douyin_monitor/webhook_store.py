"""
Webhook 配置存储

以 JSON 数组的形式保存在用户数据目录下的 webhooks.json 中。
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from .config import get_user_data_dir
from .exceptions import ConfigError
from .webhook_models import WebhookDefinition


class WebhookStore:
    """Webhook 定义列表的持久化"""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else get_user_data_dir() / 'webhooks.json'
        self.logger = logging.getLogger('DouyinMonitor.WebhookStore')

    def load(self) -> List[WebhookDefinition]:
        """加载全部定义；文件不存在时返回空列表"""
        if not self.path.exists():
            return []

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"加载Webhook配置失败: {str(e)}", str(self.path)) from e

        if not isinstance(data, list):
            raise ConfigError("Webhook配置必须是JSON数组", str(self.path))

        webhooks = []
        for index, item in enumerate(data):
            try:
                webhooks.append(WebhookDefinition.model_validate(item))
            except ValidationError as e:
                # 单条损坏的定义不影响其余定义
                self.logger.warning(f"⚠️ 跳过无效的Webhook配置 #{index}: {str(e)}")

        self.logger.info(f"✅ Webhook配置已加载: {self.path} ({len(webhooks)} 个)")
        return webhooks

    def save(self, webhooks: List[WebhookDefinition]) -> Path:
        """整体替换保存"""
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump([w.to_store_dict() for w in webhooks], f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise ConfigError(f"保存Webhook配置失败: {str(e)}", str(self.path)) from e

        self.logger.info(f"✅ Webhook配置已保存到: {self.path}")
        return self.path


__all__ = ["WebhookStore"]
