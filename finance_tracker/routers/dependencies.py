from fastapi import Header


# Stand-in for real authentication: the caller identifies itself with a header.
# Ownership of every record is still enforced by the crud layer.
def get_current_user_id(x_user_id: int = Header(..., alias="X-User-Id", gt=0)) -> int:
    return x_user_id
