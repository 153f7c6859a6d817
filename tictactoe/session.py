from itsdangerous import BadSignature, Signer
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv()

session_secret = os.getenv("SESSION_SECRET")
if session_secret is None:
	raise ValueError("SESSION_SECRET environment variable is not set")
signer = Signer(session_secret, salt="rejoin-token")


def issue_rejoin_token(room_code: str, symbol: str) -> str:
	return signer.sign(f"{room_code}:{symbol}").decode()


def read_rejoin_token(token: Optional[str], room_code: str) -> Optional[str]:
	"""Symbol the token was issued for, or None if it is missing, forged or for another room."""
	if not token:
		return None
	try:
		value = signer.unsign(token).decode()
	except BadSignature:
		return None
	code, _, symbol = value.partition(":")
	if code != room_code or symbol not in ("X", "O"):
		return None
	return symbol
