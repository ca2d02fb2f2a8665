from fastapi import Request


def get_client_ip(request: Request) -> str | None:
    """Client address for audit rows: first X-Forwarded-For hop, else the socket peer."""
    first_hop = request.headers.get('x-forwarded-for', '').split(',')[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else None
