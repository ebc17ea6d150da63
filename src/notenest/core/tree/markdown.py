"""Render card subtrees as markdown."""

import io

from notenest.models.card import (
    BulletBlock,
    Card,
    CheckboxBlock,
    ContentBlock,
    ImageBlock,
    LinkBlock,
    TextBlock,
)


def _visible(cards: tuple[Card, ...], include_deleted: bool) -> list[Card]:
    shown = [c for c in cards if include_deleted or not c.is_deleted]
    return sorted(shown, key=lambda c: -c.sort_order)


def _write_block(out: io.StringIO, block: ContentBlock, indent: str) -> None:
    if isinstance(block, TextBlock):
        for line in block.content.split("\n"):
            out.write(f"{indent}  > {line}\n")
    elif isinstance(block, BulletBlock):
        for item in block.items:
            out.write(f"{indent}  {'  ' * item.indent}* {item.content}\n")
    elif isinstance(block, CheckboxBlock):
        out.write(f"{indent}  [{'x' if block.checked else ' '}]\n")
    elif isinstance(block, LinkBlock):
        out.write(f"{indent}  <{block.url}>\n")
    elif isinstance(block, ImageBlock):
        out.write(f"{indent}  ![image {block.id}] ({block.width}%)\n")


def render_subtree_as_markdown(
    card: Card,
    *,
    max_depth: int | None = None,
    include_blocks: bool = True,
    include_deleted: bool = False,
) -> str:
    """Render a card and its descendants as indented markdown.

    Args:
        card: The root card to start rendering from.
        max_depth: Max levels below the start card to include (None = unlimited).
        include_blocks: Whether to include card content blocks.
        include_deleted: Whether to render cards in the recycle bin.

    Returns:
        Markdown string with bullet-list hierarchy.
    """
    out = io.StringIO()

    def walk(node: Card, depth: int) -> None:
        indent = "    " * depth
        title = node.title or "Untitled"
        suffix = " (deleted)" if node.is_deleted else ""
        out.write(f"{indent}- {title}{suffix}\n")
        if include_blocks:
            for block in node.blocks:
                _write_block(out, block, indent)

        children = _visible(node.children, include_deleted)
        if max_depth is not None and depth >= max_depth:
            # Truncation indicator when children are cut off by max_depth
            if children:
                child_indent = "    " * (depth + 1)
                noun = "child" if len(children) == 1 else "children"
                out.write(f"{child_indent}- ... ({len(children)} more {noun}, id={node.id})\n")
            return
        for child in children:
            walk(child, depth + 1)

    walk(card, 0)
    return out.getvalue()
