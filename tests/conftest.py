"""Shared test fixtures for article-sync."""

import sys
from pathlib import Path

import pytest

# Ensure the package is importable without installation
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from article_sync.content.uploads import UploadedImage


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def sample_markdown() -> str:
    """A short article touching every block construct."""
    return """# 标题

正文，**重点**和*强调*，还有`code`和[链接](https://example.com)。

## 二级标题

> 引用一段话

- 第一项
- 第二项
    - 嵌套项

| 名称 | 数值 |
| :-- | --: |
| a | 1 |

```python
print("hi")
```

$$
E = mc^2
$$

---

![示意图](http://img.example.com/a.png)
"""


class FakeUploader:
    """Records calls and returns a CDN URL with fixed dimensions."""

    def __init__(self, width: int = 800, height: int = 400, fail_on=()):
        self.calls: list[str] = []
        self.width = width
        self.height = height
        self.fail_on = set(fail_on)

    async def __call__(self, src: str) -> dict:
        self.calls.append(src)
        if src in self.fail_on:
            raise RuntimeError(f"upload rejected: {src}")
        name = src.rsplit("/", 1)[-1]
        return {"url": f"http://cdn/{name}", "width": self.width, "height": self.height}


@pytest.fixture
def fake_uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def make_uploader():
    """Factory for uploaders with custom dimensions or failing sources."""
    return FakeUploader


@pytest.fixture
def no_upload_delay(monkeypatch):
    """Disable the pause between sequential uploads."""
    from article_sync.common.config import settings

    monkeypatch.setattr(settings.upload, "delay_seconds", 0)
