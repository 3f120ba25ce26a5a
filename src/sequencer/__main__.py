import os

import uvicorn


def main():
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("sequencer.app:app", host="0.0.0.0", port=port, lifespan="on")


if __name__ == "__main__":
    main()
