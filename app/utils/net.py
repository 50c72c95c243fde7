from fastapi import Request


def get_client_ip(request: Request) -> str:
    # honor proxies/load balancers if present
    xff = request.headers.get("X-Forwarded-For", "")
    if xff:
        # first ip in list is original client
        return xff.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "127.0.0.1"
