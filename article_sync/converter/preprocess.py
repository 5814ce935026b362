"""Per-platform HTML cleanup before conversion.

Article HTML copied from a source site carries markup no target editor
wants: WeChat widgets, lazy-load placeholders, line-number gutters,
tracking attributes. ``preprocess_for_platform`` applies the cleanup steps
a ``PreprocessConfig`` enables and returns both the cleaned HTML and its
Markdown conversion.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping

from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString, Tag
from pydantic import BaseModel, Field

from article_sync.common.config import settings
from article_sync.common.logging import setup_logging
from article_sync.content.capabilities import OutputFormat
from article_sync.converter.core import html_to_markdown
from article_sync.converter.dom import extract_code_text, tag_attrs
from article_sync.converter.rules import is_line_number_element, resolve_code_language

logger = setup_logging(module_name="converter.preprocess")

SPECIAL_TAGS = ["mpprofile", "qqmusic", "mpvoice", "mpcps", "mp-miniprogram", "mp-common-product"]
# Removed together with their parent when remove_special_tags_with_parent is set
PARENT_SPECIAL_TAGS = ["mpprofile", "qqmusic"]
LAZY_SRC_ATTRS = ["data-src", "data-original", "data-actualsrc", "_src"]
MEDIA_TAGS = ["img", "video", "audio", "iframe", "canvas", "svg"]
SVG_PLACEHOLDER = "data:image/svg"

# Repeated passes for steps that expose new candidates as they remove
MAX_PASSES = 5


class PreprocessConfig(BaseModel):
    """Cleanup steps for one target platform.

    The defaults are the steps every platform gets; platform-specific ones
    (link removal, section conversion, empty-line removal...) are off.
    """
    output_format: OutputFormat = OutputFormat.HTML

    remove_links: bool = False
    keep_link_domains: list[str] = Field(default_factory=list)

    remove_iframes: bool = True
    remove_comments: bool = True
    remove_special_tags: bool = True
    remove_special_tags_with_parent: bool = False
    remove_svg_images: bool = True

    process_code_blocks: bool = True
    process_lazy_images: bool = True

    remove_empty_elements: bool = True
    remove_data_attributes: bool = True
    remove_srcset: bool = True
    remove_sizes: bool = True

    convert_section_to_div: bool = False
    convert_section_to_p: bool = False

    remove_trailing_br: bool = False
    unwrap_single_child_containers: bool = False
    unwrap_nested_figures: bool = False
    compact_html: bool = False

    remove_empty_lines: bool = False
    remove_empty_divs: bool = False
    remove_nested_empty_containers: bool = False


@dataclass(frozen=True)
class PreprocessResult:
    html: str
    markdown: str


def preprocess_for_platform(html: str, config: PreprocessConfig | None = None) -> PreprocessResult:
    """Clean ``html`` for one platform and convert the result to Markdown.

    Args:
        html: Raw article HTML.
        config: Enabled cleanup steps. Defaults to ``PreprocessConfig()``.

    Returns:
        Cleaned HTML and its Markdown. The Markdown is always produced so
        Markdown-based targets can use it.
    """
    config = config or PreprocessConfig()
    soup = BeautifulSoup(html or "", settings.converter.html_parser)
    root = soup.body if soup.body is not None else soup

    if config.process_code_blocks:
        _process_code_blocks(soup, root)
    if config.remove_comments:
        _remove_comments(root)
    if config.remove_iframes:
        _remove_elements(root, ["iframe"])
    if config.remove_special_tags:
        if config.remove_special_tags_with_parent:
            _remove_elements_with_parent(root, PARENT_SPECIAL_TAGS)
            _remove_elements(root, [t for t in SPECIAL_TAGS if t not in PARENT_SPECIAL_TAGS])
        else:
            _remove_elements(root, SPECIAL_TAGS)
    if config.remove_svg_images:
        _process_svg_images(root)

    _remove_elements(root, ["script", "style", "noscript"])

    if config.remove_links:
        _process_links(root, config.keep_link_domains)
    if config.process_lazy_images:
        _process_lazy_images(root)
    if config.remove_empty_elements:
        _remove_empty_elements(root)
    if config.remove_data_attributes:
        _remove_data_attributes(root)
    if config.remove_srcset or config.remove_sizes:
        _remove_image_attributes(root, config)

    if config.convert_section_to_div:
        _convert_sections(root, "div")
    elif config.convert_section_to_p:
        _convert_sections(root, "p")

    if config.remove_trailing_br:
        _remove_trailing_br(root)
    if config.unwrap_nested_figures:
        _unwrap_nested_figures(root)
    if config.unwrap_single_child_containers:
        _unwrap_single_child_containers(root)
    if config.compact_html:
        _compact_html(root)

    if config.remove_empty_lines:
        _remove_only_br_or_whitespace(root, ["p", "section"], keep_media=False)
    if config.remove_empty_divs:
        _remove_only_br_or_whitespace(root, ["div"], keep_media=True)
    if config.remove_nested_empty_containers:
        _remove_nested_empty_containers(root)

    cleaned = root.decode_contents() if isinstance(root, Tag) else str(root)
    return PreprocessResult(html=cleaned, markdown=html_to_markdown(cleaned))


def preprocess_for_platforms(
    html: str,
    configs: Mapping[str, PreprocessConfig],
) -> dict[str, PreprocessResult]:
    """Run ``preprocess_for_platform`` once per platform id."""
    results: dict[str, PreprocessResult] = {}
    for platform_id, config in configs.items():
        results[platform_id] = preprocess_for_platform(html, config)
        logger.debug("Preprocessed content for %s", platform_id)
    return results


# === Steps ===


def _remove_comments(root: Tag) -> None:
    for comment in root.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()


def _remove_elements(root: Tag, names: list[str]) -> None:
    for el in root.find_all(names):
        el.extract()


def _remove_elements_with_parent(root: Tag, names: list[str]) -> None:
    for el in root.find_all(names):
        parent = el.parent
        if parent is not None and parent is not root and parent.name not in ("body", "html", "[document]"):
            parent.extract()
        else:
            el.extract()


def _process_svg_images(root: Tag) -> None:
    for img in root.find_all("img"):
        if not (img.get("src") or "").startswith(SVG_PLACEHOLDER):
            continue
        data_src = img.get("data-src")
        if data_src:
            img["src"] = data_src
        else:
            img.extract()


def _process_links(root: Tag, keep_domains: list[str]) -> None:
    for link in root.find_all("a"):
        href = link.get("href") or ""
        if href and any(domain in href for domain in keep_domains):
            continue
        link.name = "span"
        link.attrs = {}


def _process_lazy_images(root: Tag) -> None:
    for img in root.find_all("img"):
        for attr in LAZY_SRC_ATTRS:
            lazy = img.get(attr)
            if lazy and not lazy.startswith(SVG_PLACEHOLDER):
                src = img.get("src") or ""
                if not src or src.startswith(SVG_PLACEHOLDER):
                    img["src"] = lazy
                break
        for attr in LAZY_SRC_ATTRS:
            if attr in img.attrs:
                del img[attr]


def _has_media(el: Tag) -> bool:
    return el.find(MEDIA_TAGS) is not None


def _remove_empty_elements(root: Tag) -> None:
    for _ in range(3):
        removed = 0
        for el in root.find_all(["p", "div", "section", "span", "figure"]):
            if not el.get_text().strip() and not _has_media(el):
                el.extract()
                removed += 1
        if not removed:
            break


def _remove_data_attributes(root: Tag) -> None:
    for el in root.find_all(True):
        for name in [n for n in el.attrs if n.startswith("data-") and n != "data-src"]:
            del el[name]


def _remove_image_attributes(root: Tag, config: PreprocessConfig) -> None:
    for img in root.find_all("img"):
        dropped = ["loading", "decoding"]
        if config.remove_srcset:
            dropped.append("srcset")
        if config.remove_sizes:
            dropped.append("sizes")
        for name in dropped:
            if name in img.attrs:
                del img[name]


def _convert_sections(root: Tag, target: str) -> None:
    for section in root.find_all("section"):
        section.name = target


def _remove_trailing_br(root: Tag) -> None:
    for el in root.find_all(["p", "div", "section"]):
        children = [child for child in el.children if isinstance(child, Tag)]
        while children and children[-1].name == "br":
            children.pop().extract()


def _unwrap_nested_figures(root: Tag) -> None:
    for _ in range(MAX_PASSES):
        nested = [fig for fig in root.find_all("figure") if fig.parent is not None and fig.parent.name == "figure"]
        if not nested:
            break
        for inner in nested:
            outer = inner.parent
            if outer is not None and outer.name == "figure":
                outer.replace_with(inner.extract())


def _significant_children(el: Tag) -> list:
    return [
        child for child in el.children
        if isinstance(child, Tag)
        or (isinstance(child, NavigableString) and not isinstance(child, Comment) and child.strip())
    ]


def _unwrap_single_child_containers(root: Tag) -> None:
    for _ in range(MAX_PASSES):
        unwrapped = 0
        for div in root.find_all("div"):
            if div.parent is None:
                continue
            children = _significant_children(div)
            if len(children) == 1 and isinstance(children[0], Tag) and children[0].name in ("div", "article", "p", "section"):
                div.replace_with(children[0].extract())
                unwrapped += 1
        if not unwrapped:
            break


def _compact_html(root: Tag) -> None:
    for text in root.find_all(string=True):
        if isinstance(text, Comment) or not re.fullmatch(r"\s+", str(text)):
            continue
        parent = text.parent
        if parent is None or parent.name in ("pre", "code"):
            continue
        prev, nxt = text.previous_sibling, text.next_sibling
        if (prev is None or isinstance(prev, Tag)) and (nxt is None or isinstance(nxt, Tag)):
            text.extract()


def _only_br_or_whitespace(el: Tag) -> bool:
    for child in el.children:
        if isinstance(child, Tag):
            if child.name != "br":
                return False
        elif isinstance(child, NavigableString) and not isinstance(child, Comment) and child.strip():
            return False
    return True


def _remove_only_br_or_whitespace(root: Tag, names: list[str], keep_media: bool) -> None:
    for el in root.find_all(names):
        if keep_media and _has_media(el):
            continue
        if _only_br_or_whitespace(el):
            el.extract()


def _remove_nested_empty_containers(root: Tag) -> None:
    for _ in range(MAX_PASSES):
        removed = 0
        for el in root.find_all(["div", "section", "article", "span"]):
            if el.parent is None or _has_media(el) or el.get_text().strip():
                continue
            children = [child for child in el.children if isinstance(child, Tag)]
            if all(child.name == "br" for child in children):
                el.extract()
                removed += 1
        if not removed:
            break


# === Code blocks ===


def _leading_int(text: str) -> int | None:
    m = re.match(r"\s*(\d+)", text)
    return int(m.group(1)) if m else None


def is_line_number_container(el: Tag, code_line_count: int) -> bool:
    """Whether ``el`` is a gutter: empty or sequentially numbered lines."""
    if el.name in ("ul", "ol"):
        items = el.find_all("li")
        if len(items) >= 2:
            if len(items) == code_line_count and all(not li.get_text().strip() for li in items):
                return True
            if all(_leading_int(li.get_text()) == i + 1 for i, li in enumerate(items)):
                return True

    lines = [line.strip() for line in re.split(r"[\n\r]+", el.get_text().strip()) if line.strip()]
    return len(lines) >= 2 and all(_leading_int(line) == i + 1 for i, line in enumerate(lines))


def _remove_line_number_siblings(pre: Tag) -> None:
    parent = pre.parent
    if parent is None:
        return
    codes = pre.find_all("code")
    line_count = len(codes) if len(codes) > 1 else len(pre.get_text().split("\n"))
    for sibling in [child for child in parent.children if isinstance(child, Tag) and child is not pre]:
        if is_line_number_container(sibling, line_count):
            sibling.extract()


def _process_code_blocks(soup: BeautifulSoup, root: Tag) -> None:
    """Reduce every ``<pre>`` to ``<pre><code class="language-x">text</code></pre>``."""
    for el in root.find_all(lambda tag: is_line_number_element(tag_attrs(tag))):
        el.extract()

    for pre in root.find_all("pre"):
        if pre.parent is None:
            continue
        try:
            _remove_line_number_siblings(pre)
            code = pre.find("code")
            lang = resolve_code_language(tag_attrs(pre), tag_attrs(code) if code is not None else None)
            text = extract_code_text(pre)
        except Exception as e:
            logger.error("Failed to simplify code block: %s", e)
            continue

        if not text.strip():
            pre.extract()
            continue
        pre.clear()
        new_code = soup.new_tag("code", attrs={"class": f"language-{lang}"})
        new_code.string = text
        pre.append(new_code)
        for name in ("class", "style", "data-lang"):
            if name in pre.attrs:
                del pre[name]

