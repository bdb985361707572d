import json
from importlib import resources

def _load_abi(name: str) -> list:
    path = resources.files("swapbot.abis").joinpath(name)
    if not path.is_file():
        raise FileNotFoundError(f"ABI not found: {name}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)

def load_erc20_abi() -> list:
    return _load_abi("erc20_abi.json")

def load_router_abi() -> list:
    return _load_abi("router_abi.json")
