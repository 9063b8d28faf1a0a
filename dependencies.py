# dependencies.py
"""
Shared FastAPI dependencies: bearer-token auth, role checks and the
payment gateway client.
"""
from fastapi import Depends, HTTPException, Request
from jose import JWTError, jwt

import config
from services.paypal_client import PayPalClient


# Token Auth Dependency
def verify_token(request: Request) -> dict:
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          raise HTTPException(status_code=401, detail="Missing token")
     token = auth.split(" ")[1]
     try:
          payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
          return payload
     except JWTError:
          raise HTTPException(status_code=403, detail="Invalid token")


def require_roles(*roles: str):
     """Dependency factory: the token's ``role`` claim must be one of ``roles``."""

     def checker(token: dict = Depends(verify_token)) -> dict:
          if token.get("role") not in roles:
               raise HTTPException(status_code=403, detail="Insufficient role")
          return token

     return checker


def get_paypal_client(request: Request) -> PayPalClient:
     return request.app.state.paypal
