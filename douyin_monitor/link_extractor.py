"""
抖音短链提取器

负责从剪贴板文本中找出平台短链，并从短链中解析视频标识符。
"""

import re
from typing import List, Optional

DEFAULT_SHORT_LINK_DOMAIN = "v.douyin.com"


class LinkExtractor:
    """按固定模式提取短链 https://<域名>/<标识符>/"""

    def __init__(self, domain: str = DEFAULT_SHORT_LINK_DOMAIN):
        self.domain = domain
        self.link_pattern = re.compile(
            rf"https://{re.escape(domain)}/[A-Za-z0-9\-_]+/?"
        )
        self.identifier_pattern = re.compile(
            rf"https://{re.escape(domain)}/([A-Za-z0-9\-_]+)/?"
        )

    def extract(self, text: Optional[str]) -> List[str]:
        """返回文本中所有不重叠的短链，保持从左到右的顺序"""
        if not text:
            return []
        # findall 每次调用都从头扫描，重复调用结果一致
        return self.link_pattern.findall(text)

    def extract_identifier(self, link: str) -> Optional[str]:
        """从短链中取出视频标识符，无法识别时返回 None"""
        match = self.identifier_pattern.search(link or "")
        if match:
            return match.group(1)
        return None


__all__ = ["DEFAULT_SHORT_LINK_DOMAIN", "LinkExtractor"]
