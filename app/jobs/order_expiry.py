from sqlmodel import Session

from app.database import engine
from app.services.order_expiry_service import expire_stale_orders


def run():
    with Session(engine) as session:
        return expire_stale_orders(session)


if __name__ == "__main__":
    run()
