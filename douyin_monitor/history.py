"""
有界历史记录

固定容量、按插入顺序（最新在前）保存记录，可选按键去重。
剪贴板历史、抖音链接历史和日志共用这一容器。
"""

from collections import deque
from typing import Callable, Deque, Generic, Hashable, Iterator, List, Optional, TypeVar

T = TypeVar("T")


class BoundedHistory(Generic[T]):
    """最新在前的有界列表，超出容量时从尾部淘汰"""

    def __init__(self, capacity: int, key: Optional[Callable[[T], Hashable]] = None):
        if capacity < 1:
            raise ValueError("历史容量必须大于0")
        self._capacity = capacity
        self._key = key
        self._items: Deque[T] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    def insert_front(self, item: T) -> bool:
        """插入到最前面；若已存在相同键的记录则不做任何改动并返回 False"""
        if self._key is not None and self.contains(self._key(item)):
            return False

        self._items.appendleft(item)
        self._trim()
        return True

    def contains(self, key: Hashable) -> bool:
        return self.find(key) is not None

    def find(self, key: Hashable) -> Optional[T]:
        """按去重键查找记录"""
        if self._key is None:
            return None
        for item in self._items:
            if self._key(item) == key:
                return item
        return None

    def resize(self, capacity: int):
        """调整容量，立即裁剪多余的旧记录"""
        if capacity < 1:
            raise ValueError("历史容量必须大于0")
        self._capacity = capacity
        self._trim()

    def clear(self):
        self._items.clear()

    def to_list(self) -> List[T]:
        return list(self._items)

    def _trim(self):
        while len(self._items) > self._capacity:
            self._items.pop()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __bool__(self) -> bool:
        return bool(self._items)


__all__ = ["BoundedHistory"]
