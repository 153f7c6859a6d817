"""
Pure tic-tac-toe board logic.
A board is a list of 9 cells, each "", "X" or "O".
"""
from typing import List, Optional

from tictactoe.game.errors import InvalidMove

EMPTY = ""
SYMBOLS = ("X", "O")
DRAW = "draw"

WIN_PATTERNS = [
    (0, 1, 2), (3, 4, 5), (6, 7, 8),  # rows
    (0, 3, 6), (1, 4, 7), (2, 5, 8),  # columns
    (0, 4, 8), (2, 4, 6),  # diagonals
]


def empty_board() -> List[str]:
    return [EMPTY] * 9


def other(symbol: str) -> str:
    return "O" if symbol == "X" else "X"


def apply_move(board: List[str], index, symbol: str) -> List[str]:
    """Return a copy of `board` with `symbol` written at `index`."""
    if symbol not in SYMBOLS:
        raise InvalidMove(f"Unknown symbol {symbol!r}")
    # bool is an int subclass, reject it explicitly
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index <= 8:
        raise InvalidMove("Position must be between 0 and 8")
    if board[index] != EMPTY:
        raise InvalidMove("Cell already taken")
    new_board = list(board)
    new_board[index] = symbol
    return new_board


def evaluate(board: List[str]) -> Optional[str]:
    """Winner symbol, "draw", or None while the game can go on."""
    for a, b, c in WIN_PATTERNS:
        if board[a] != EMPTY and board[a] == board[b] == board[c]:
            return board[a]
    if all(cell != EMPTY for cell in board):
        return DRAW
    return None


# Persisted layout: 9 characters, a space for an empty cell

def encode(board: List[str]) -> str:
    return "".join(cell or " " for cell in board)


def decode(value: str) -> List[str]:
    value = (value or "").ljust(9)
    return ["" if char == " " else char for char in value[:9]]
