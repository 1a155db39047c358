from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success_response(data=None, message="OK", status=200):
    return JSONResponse(
        status_code=status,
        content={
            "success": True,
            "message": message,
            "data": jsonable_encoder(data),
        }
    )


def error_response(message="An error occurred", status=400, data=None):
    return JSONResponse(
        status_code=status,
        content={
            "success": False,
            "message": message,
            "data": jsonable_encoder(data),
        }
    )
