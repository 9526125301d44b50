from enum import Enum


class UserRole(str, Enum):
    # EXACTLY 2 marketplace roles
    farmer = "farmer"
    merchant = "merchant"

    @classmethod
    def parse(cls, raw) -> "UserRole":
        """
        Normalize a role coming from the identity provider or a stored row.
        "Farmer", " farmer ", "FARMER" all resolve to UserRole.farmer.
        """
        if isinstance(raw, cls):
            return raw
        if raw is None:
            raise ValueError("Role is required.")
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role: {raw!r}.")
