"""
Content Block Editing

Pure operations over a lesson's ordered block list. Each returns a new
list and leaves its input untouched. After every mutation the ``order``
fields form the contiguous sequence 0..n-1 in list position.
"""

from typing import Any, List, Sequence

from .models import BlockType, ContentBlock

# Types whose payload lives in ``content``
TEXTUAL_TYPES = (BlockType.TEXT, BlockType.CODE)


def new_block(block_type: BlockType, order: int = 0) -> ContentBlock:
    """An empty block of ``block_type`` as created by the editor."""
    block_type = BlockType(block_type)
    return ContentBlock(
        type=block_type,
        order=order,
        content="" if block_type in TEXTUAL_TYPES else None,
        iframe_src="" if block_type == BlockType.IFRAME else None,
        settings={},
    )


def renumber(blocks: Sequence[ContentBlock]) -> List[ContentBlock]:
    """Rewrite ``order`` to match list position."""
    return [
        block if block.order == i else block.model_copy(update={"order": i})
        for i, block in enumerate(blocks)
    ]


def sort_blocks(blocks: Sequence[ContentBlock]) -> List[ContentBlock]:
    """Blocks by ascending ``order``; ties keep their stored sequence."""
    return sorted(blocks, key=lambda b: b.order)


def has_contiguous_order(blocks: Sequence[ContentBlock]) -> bool:
    """True when the orders are exactly 0..n-1, in any list position."""
    return sorted(b.order for b in blocks) == list(range(len(blocks)))


def _check_index(blocks: Sequence[ContentBlock], index: int) -> None:
    if not 0 <= index < len(blocks):
        raise IndexError(f"Block index {index} out of range (0..{len(blocks) - 1})")


def append_block(blocks: Sequence[ContentBlock], block_type: BlockType) -> List[ContentBlock]:
    return renumber([*blocks, new_block(block_type, order=len(blocks))])


def replace_block(
    blocks: Sequence[ContentBlock],
    index: int,
    block: ContentBlock,
) -> List[ContentBlock]:
    """Put ``block`` at ``index``; its order is taken from the position."""
    _check_index(blocks, index)
    updated = list(blocks)
    updated[index] = block
    return renumber(updated)


def update_block(
    blocks: Sequence[ContentBlock],
    index: int,
    **changes: Any,
) -> List[ContentBlock]:
    """
    Edit fields of one block, e.g. ``update_block(blocks, 0, content="<p>Hi</p>")``.

    ``order`` cannot be changed this way; use the move operations.
    """
    _check_index(blocks, index)
    if "order" in changes:
        raise ValueError("Use move_block or reorder_blocks to change order")
    unknown = set(changes) - set(ContentBlock.model_fields)
    if unknown:
        raise ValueError(f"Unknown block fields: {sorted(unknown)}")
    current = blocks[index]
    edited = ContentBlock.model_validate({**current.model_dump(), **changes})
    return replace_block(blocks, index, edited)


def update_settings(
    blocks: Sequence[ContentBlock],
    index: int,
    key: str,
    value: Any,
) -> List[ContentBlock]:
    """Set one settings key. A value of None removes the key."""
    _check_index(blocks, index)
    settings = dict(blocks[index].settings)
    if value is None:
        settings.pop(key, None)
    else:
        settings[key] = value
    return replace_block(
        blocks, index, blocks[index].model_copy(update={"settings": settings})
    )


def delete_block(blocks: Sequence[ContentBlock], index: int) -> List[ContentBlock]:
    """Remove one block; later blocks move up one position."""
    _check_index(blocks, index)
    return renumber([b for i, b in enumerate(blocks) if i != index])


def move_block(
    blocks: Sequence[ContentBlock],
    from_index: int,
    to_index: int,
) -> List[ContentBlock]:
    """Move one block to ``to_index``, shifting the blocks in between."""
    _check_index(blocks, from_index)
    _check_index(blocks, to_index)
    updated = list(blocks)
    block = updated.pop(from_index)
    updated.insert(to_index, block)
    return renumber(updated)


def move_up(blocks: Sequence[ContentBlock], index: int) -> List[ContentBlock]:
    """Swap with the previous block. No-op for the first block."""
    _check_index(blocks, index)
    if index == 0:
        return renumber(blocks)
    return move_block(blocks, index, index - 1)


def move_down(blocks: Sequence[ContentBlock], index: int) -> List[ContentBlock]:
    """Swap with the next block. No-op for the last block."""
    _check_index(blocks, index)
    if index == len(blocks) - 1:
        return renumber(blocks)
    return move_block(blocks, index, index + 1)


def reorder_blocks(
    blocks: Sequence[ContentBlock],
    new_order: Sequence[int],
) -> List[ContentBlock]:
    """
    Apply a permutation, as sent to the lesson API's reorder endpoint.

    ``new_order[i]`` is the current index of the block that should end up
    at position ``i``.

    Raises:
        ValueError: if ``new_order`` is not a permutation of the indexes
    """
    if sorted(new_order) != list(range(len(blocks))):
        raise ValueError(
            f"new_order must be a permutation of 0..{len(blocks) - 1}, got {list(new_order)}"
        )
    return renumber([blocks[i] for i in new_order])
