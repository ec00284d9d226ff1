"""
版本信息
"""

__version__ = "1.2.0"
__version_info__ = (1, 2, 0)

# 项目元数据
PROJECT_NAME = "douyin-clipboard-monitor"
PROJECT_DESCRIPTION = "抖音短链剪贴板监控、解析与自动下载工具"
AUTHOR = "Douyin Monitor Team"


def get_version_string():
    """获取版本字符串"""
    return __version__


__all__ = [
    "__version__",
    "__version_info__",
    "PROJECT_NAME",
    "PROJECT_DESCRIPTION",
    "AUTHOR",
    "get_version_string",
]
