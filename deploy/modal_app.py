import os

import modal

ROLE = os.getenv("PLATFORM_ROLE", "crm")

app = modal.App(f"syncbridge-{ROLE}")

image = (
    modal.Image.debian_slim(python_version="3.11")
    .pip_install(
        "fastapi>=0.115.0",
        "uvicorn>=0.30.0",
        "pydantic>=2.7",
        "pydantic-settings>=2.3",
        "httpx>=0.27",
        "supabase>=2.5",
        "python-jose[cryptography]>=3.3",
    )
    .env({"PLATFORM_ROLE": ROLE})
    .add_local_python_source("syncbridge")
)


@app.function(image=image, secrets=[modal.Secret.from_name(f"syncbridge-{ROLE}")])
@modal.asgi_app()
def fastapi_app():
    from syncbridge.main import create_app

    return create_app(ROLE)
