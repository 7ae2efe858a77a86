"""Markup tree utilities: traversal, text extraction and markdown round-trip.

Release bodies are stored as a root/element/text tree (see schemas.py),
never as raw markdown. This module is the only place that knows how to:
- walk a tree depth-first (`walk`), the one traversal every consumer shares
- flatten a tree to plain text (`flatten_text`)
- pull candidate commit messages out of list items (`extract_list_items`)
- parse markdown into a tree (`render_to_tree`, via markdown-it-py)
- serialize a tree back to markdown (`render_to_markdown`, via mistune)

Round-tripping is lossless for paragraphs, headings, lists, links and
inline code. Anything markdown-it cannot handle degrades to a single
paragraph holding the raw text.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from typing import Union

from markdown_it import MarkdownIt
from markdown_it.token import Token
from mistune.core import BlockState
from mistune.renderers.markdown import MarkdownRenderer

from release_digest.logging_config import get_logger
from release_digest.schemas import ElementNode, RootNode, TextNode

logger = get_logger(__name__)

Node = Union[RootNode, ElementNode, TextNode]

HEADING_TAGS = ("h1", "h2", "h3", "h4")

_md = MarkdownIt("commonmark").enable("strikethrough")

# ---------------------------------------------------------------------------
# Construction helpers
# ---------------------------------------------------------------------------


def text(value: str) -> TextNode:
    return TextNode(value=value)


def element(tag: str, children: list | None = None, **props: object) -> ElementNode:
    return ElementNode(tag=tag, props=dict(props), children=list(children or []))


def paragraph_tree(content: str) -> RootNode:
    """A tree holding `content` verbatim in one paragraph."""
    return RootNode(children=[element("p", [text(content)])])


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


def walk(node: Node, prune: Callable[[Node], bool] | None = None) -> Iterator[Node]:
    """Yield `node` and its descendants depth-first, in document order.

    Args:
        node: Where to start (usually a RootNode)
        prune: Optional predicate; nodes for which it returns True are
               yielded but their children are not visited.
    """
    yield node
    if isinstance(node, TextNode):
        return
    if prune is not None and node is not None and prune(node):
        return
    for child in node.children:
        yield from walk(child, prune)


def flatten_text(node: Node) -> str:
    """Concatenate every text value (trimmed, empties dropped) with spaces."""
    values: list[str] = []
    for current in walk(node):
        if isinstance(current, TextNode):
            value = current.value.strip()
            if value:
                values.append(value)
    return " ".join(values)


def _is_list_item(node: Node) -> bool:
    return isinstance(node, ElementNode) and node.tag == "li"


_TRAILING_SHORT_SHA = re.compile(r"\([a-f0-9]{7,8}\)$")


def extract_list_items(tree: Node) -> list[str]:
    """Extract candidate commit messages from every `li` in the tree.

    Nested list items are folded into their parent item's text. Merge
    commits and messages of five characters or fewer are dropped, and a
    trailing "(abc1234)" commit hash is removed.
    """
    messages: list[str] = []
    for node in walk(tree, prune=_is_list_item):
        if not _is_list_item(node):
            continue
        message = flatten_text(node)
        if not message:
            continue
        cleaned = re.sub(r"\s+", " ", message)
        cleaned = _TRAILING_SHORT_SHA.sub("", cleaned).strip()
        if cleaned.startswith("Merge") or len(cleaned) <= 5:
            continue
        messages.append(cleaned)
    return messages


def has_headings(tree: RootNode) -> bool:
    """True if the tree has a top-level h1-h4, i.e. it is already structured."""
    return any(
        isinstance(child, ElementNode) and child.tag in HEADING_TAGS
        for child in tree.children
    )


# ---------------------------------------------------------------------------
# Markdown -> tree
# ---------------------------------------------------------------------------


def render_to_tree(markdown: str) -> RootNode:
    """Parse markdown into a markup tree.

    Falls back to a single paragraph containing the raw content if the
    parser raises, so a weird release body never costs us the release.
    """
    try:
        tokens = _md.parse(markdown or "")
        return RootNode(children=_build_nodes(tokens))
    except Exception as exc:
        logger.warning("markdown_parse_failed", error=str(exc))
        return paragraph_tree(markdown)


def _append(siblings: list, node: ElementNode | TextNode) -> None:
    # markdown-it emits text in fragments; keep one text node per run
    if isinstance(node, TextNode) and siblings and isinstance(siblings[-1], TextNode):
        siblings[-1].value += node.value
    else:
        siblings.append(node)


def _build_nodes(tokens: list[Token]) -> list[ElementNode | TextNode]:
    top: list[ElementNode | TextNode] = []
    stack: list[list] = [top]
    for token in tokens:
        if token.nesting == 1:
            # hidden paragraphs wrap the content of tight list items
            if token.hidden:
                continue
            node = ElementNode(tag=token.tag, props=dict(token.attrs or {}))
            stack[-1].append(node)
            stack.append(node.children)
        elif token.nesting == -1:
            if not token.hidden and len(stack) > 1:
                stack.pop()
        elif token.type == "inline":
            for child in _build_nodes(token.children or []):
                _append(stack[-1], child)
        else:
            leaf = _leaf_node(token)
            if leaf is not None:
                _append(stack[-1], leaf)
    return top


def _leaf_node(token: Token) -> ElementNode | TextNode | None:
    if token.type in ("text", "text_special", "html_inline", "html_block"):
        # markdown-it emits empty text tokens around emphasis markers
        return text(token.content) if token.content else None
    if token.type == "softbreak":
        return text("\n")
    if token.type == "hardbreak":
        return element("br")
    if token.type == "code_inline":
        return element("code", [text(token.content)])
    if token.type in ("fence", "code_block"):
        props = {"language": token.info.strip()} if token.info.strip() else {}
        code = element("code", [text(token.content)], **props)
        return element("pre", [code])
    if token.type == "image":
        return element("img", src=token.attrGet("src") or "", alt=token.content)
    if token.type == "hr":
        return element("hr")
    return None


# ---------------------------------------------------------------------------
# Tree -> markdown
# ---------------------------------------------------------------------------

_INLINE_ESCAPE = re.compile(r"([\\`*_\[\]<~])")
# Characters that open a block when they start a line; escaping the
# punctuation (never a digit) keeps them literal.
_LINE_MARKER = re.compile(r"^([#>+=-])", re.MULTILINE)
_ORDERED_MARKER = re.compile(r"^(\d{1,9})([.)])", re.MULTILINE)
_BLOCK_TAGS = {"p", "ul", "ol", "li", "blockquote", "pre", "hr", *HEADING_TAGS, "h5", "h6"}
_INLINE_TYPES = {"a": "link", "strong": "strong", "em": "emphasis", "s": "strikethrough"}


def _escape_line_starts(rendered: str) -> str:
    rendered = _LINE_MARKER.sub(r"\\\1", rendered)
    return _ORDERED_MARKER.sub(r"\1\\\2", rendered)


class TreeMarkdownRenderer(MarkdownRenderer):
    """mistune's markdown renderer, made lossless for text that came from a tree.

    Stored text is literal, so anything markdown would read as syntax is
    escaped on the way out.
    """

    def text(self, token: dict, state: BlockState) -> str:
        return _INLINE_ESCAPE.sub(r"\\\1", token["raw"])

    def paragraph(self, token: dict, state: BlockState) -> str:
        return _escape_line_starts(self.render_children(token, state)) + "\n\n"

    def block_text(self, token: dict, state: BlockState) -> str:
        return _escape_line_starts(self.render_children(token, state)) + "\n"

    def codespan(self, token: dict, state: BlockState) -> str:
        fence = "``" if "`" in token["raw"] else "`"
        return f"{fence}{token['raw']}{fence}"

    def strikethrough(self, token: dict, state: BlockState) -> str:
        return f"~~{self.render_children(token, state)}~~"

    def block_quote(self, token: dict, state: BlockState) -> str:
        inner = self.render_children(token, state).rstrip("\n")
        return "\n".join(f"> {line}" if line else ">" for line in inner.split("\n")) + "\n\n"

    def list(self, token: dict, state: BlockState) -> str:
        rendered = super().list(token, state)
        # top-level lists need a blank line before whatever follows
        return rendered if token.get("parent") else rendered + "\n"


_renderer = TreeMarkdownRenderer()


def render_to_markdown(tree: RootNode) -> str:
    """Serialize a markup tree back to markdown."""
    tokens = _block_tokens(tree.children, tight=False)
    return _renderer.render_tokens(tokens, BlockState()).rstrip()


def _block_tokens(nodes: list, tight: bool) -> list[dict]:
    tokens: list[dict] = []
    inline_run: list = []

    def flush() -> None:
        if inline_run:
            children = _inline_tokens(inline_run)
            tokens.append({"type": "block_text" if tight else "paragraph", "children": children})
            inline_run.clear()

    for node in nodes:
        if isinstance(node, ElementNode) and node.tag in _BLOCK_TAGS:
            flush()
            tokens.append(_block_token(node))
        else:
            inline_run.append(node)
    flush()
    return tokens


def _block_token(node: ElementNode) -> dict:
    tag = node.tag
    if tag in ("h1", "h2", "h3", "h4", "h5", "h6"):
        return {
            "type": "heading",
            "attrs": {"level": int(tag[1])},
            "children": _inline_tokens(node.children),
        }
    if tag == "p":
        return {"type": "paragraph", "children": _inline_tokens(node.children)}
    if tag in ("ul", "ol"):
        return _list_token(node)
    if tag == "li":
        return _list_token(element("ul", [node]))
    if tag == "blockquote":
        return {"type": "block_quote", "children": _block_tokens(node.children, tight=False)}
    if tag == "pre":
        code = node.children[0] if node.children else element("code")
        language = code.props.get("language", "") if isinstance(code, ElementNode) else ""
        return {"type": "block_code", "raw": flatten_raw(code), "attrs": {"info": language}}
    return {"type": "thematic_break"}


def _list_token(node: ElementNode) -> dict:
    items = [child for child in node.children if isinstance(child, ElementNode)]
    tight = not any(
        isinstance(child, ElementNode) and child.tag == "p"
        for item in items
        for child in item.children
    )
    ordered = node.tag == "ol"
    return {
        "type": "list",
        "tight": tight,
        "bullet": "." if ordered else "-",
        "attrs": {"ordered": ordered, "start": int(node.props.get("start", 1))},
        "children": [
            {"type": "list_item", "children": _block_tokens(item.children, tight=tight)}
            for item in items
        ],
    }


def _inline_tokens(nodes: list) -> list[dict]:
    tokens: list[dict] = []
    for node in nodes:
        if isinstance(node, TextNode):
            tokens.append({"type": "text", "raw": node.value})
        elif node.tag == "code":
            tokens.append({"type": "codespan", "raw": flatten_raw(node)})
        elif node.tag == "br":
            tokens.append({"type": "linebreak"})
        elif node.tag == "img":
            tokens.append(
                {
                    "type": "image",
                    "children": [{"type": "text", "raw": str(node.props.get("alt", ""))}],
                    "attrs": {"url": str(node.props.get("src", ""))},
                }
            )
        elif node.tag in _INLINE_TYPES:
            token = {"type": _INLINE_TYPES[node.tag], "children": _inline_tokens(node.children)}
            if node.tag == "a":
                token["attrs"] = {"url": str(node.props.get("href", ""))}
            tokens.append(token)
        else:
            tokens.extend(_inline_tokens(node.children))
    return tokens


def flatten_raw(node: Node) -> str:
    """Concatenate text values exactly as stored (no trimming, no spaces)."""
    return "".join(n.value for n in walk(node) if isinstance(n, TextNode))
