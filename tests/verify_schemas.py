import sys
import os
import traceback
import uuid

# Add project root to path
sys.path.append(os.getcwd())

print("Starting schema verification...")

try:
    from app import schemas
    print("Schemas package imported successfully.")

    # Try instantiating a few to check for runtime errors in definitions
    from pydantic import ValidationError

    try:
        booking = schemas.BookingCreate.model_validate({
            "slotId": str(uuid.uuid4()),
            "selectedSeats": [{"seat_id": str(uuid.uuid4()), "seat_price": 108000}],
            "combos": [{"product_id": str(uuid.uuid4()), "quantity": 2}],
            "totalAmount": 178000,
            "finalAmount": 163000,
        })
        print(f"BookingCreate schema valid: {booking}")
    except ValidationError as e:
        print(f"BookingCreate validation failed: {e}")

    try:
        request = schemas.VoucherActivateRequest(promotion_code="welcome10")
        print(f"VoucherActivateRequest schema valid: {request}")
    except ValidationError as e:
        print(f"VoucherActivateRequest validation failed: {e}")

    print("SUCCESS: Schemas verified.")

except Exception:
    print("FAILURE: Schema verification failed.")
    traceback.print_exc()
    sys.exit(1)
