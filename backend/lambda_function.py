from mangum import Mangum
from main import app

# API Gateway entry point; the listing cache lives per warm container
handler = Mangum(app, lifespan="off")


def lambda_handler(event, context):
    return handler(event, context)
