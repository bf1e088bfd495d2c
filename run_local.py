#!/usr/bin/env python
"""Local development script for running sensechat-proxy."""
import os
import uvicorn

# Set environment variables for local development
os.environ.update({
    "DEBUG": "true",
    "HOST": "127.0.0.1",
    "PORT": "8089",
})

if __name__ == "__main__":
    print("Starting sensechat-proxy in development mode")
    print("Chat completions: http://127.0.0.1:8089/v1/chat/completions")
    print("Health: http://127.0.0.1:8089/_proxy/health")
    print("Authorization: 'Bearer <accessKey>|<secretKey>'")

    # Run with auto-reload
    uvicorn.run("main:app", host="127.0.0.1", port=8089, reload=True)
