#!/usr/bin/env python
"""Demo client for sensechat-proxy.

Sends an OpenAI-style chat completion through the proxy, streaming or not,
and prints what comes back. Credentials use the split form the proxy turns
into an upstream token: `Bearer <accessKey>|<secretKey>`.
"""
import requests
import json
import time
import argparse
import os

PROXY_URL = "http://127.0.0.1:8089"
ACCESS_KEY = os.getenv("SENSENOVA_ACCESS_KEY", "")
SECRET_KEY = os.getenv("SENSENOVA_SECRET_KEY", "")

def check_service():
    """Check if the proxy is running."""
    try:
        response = requests.get(f"{PROXY_URL}/_proxy/health")
        status = response.json()
        print(f"sensechat-proxy: {status['status']}")
        print(f"Upstream: {status.get('settings', {}).get('upstream_url', 'unknown')}")
        return True
    except Exception as e:
        print(f"Error connecting to service: {e}")
        print("\nMake sure sensechat-proxy is running first!")
        return False

def build_headers():
    return {
        "Authorization": f"Bearer {ACCESS_KEY}|{SECRET_KEY}",
        "Content-Type": "application/json"
    }

def chat(prompt, model, stream=True, max_tokens=512, top_p=1.0, frequency_penalty=0.0):
    """Send one chat completion through the proxy."""
    payload = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "stream": stream,
        "max_tokens": max_tokens,
        "top_p": top_p,
        "frequency_penalty": frequency_penalty
    }

    print(f"\nSending request: \"{prompt}\" (model={model}, stream={stream})")
    start_time = time.time()

    try:
        response = requests.post(
            f"{PROXY_URL}/v1/chat/completions",
            headers=build_headers(),
            json=payload,
            stream=stream
        )
    except Exception as e:
        print(f"❌ Request error: {e}")
        return None

    if response.status_code != 200:
        print(f"❌ Error: {response.status_code} - {response.text}")
        return None

    if not stream:
        result = response.json()
        print(json.dumps(result, indent=2, ensure_ascii=False))
        return result

    chunks = 0
    first_chunk_at = None
    for line in response.iter_lines(decode_unicode=True):
        if not line or not line.startswith("data:"):
            continue

        data = line[len("data:"):].strip()
        if data == "[DONE]":
            break

        event = json.loads(data)
        if "error" in event:
            print(f"\n❌ Stream error: {event['error'].get('message')}")
            break

        chunks += 1
        if first_chunk_at is None:
            first_chunk_at = time.time()
        for choice in event.get("choices", []):
            delta = choice.get("delta", {})
            print(delta.get("reasoning_content", "") + delta.get("content", ""), end="", flush=True)

    elapsed = time.time() - start_time
    print("\n\n=== Stream Summary ===")
    print(f"Chunks: {chunks}")
    if first_chunk_at is not None:
        print(f"Time to first chunk: {first_chunk_at - start_time:.2f} seconds")
    print(f"Total: {elapsed:.2f} seconds")
    return chunks

def main():
    """Main function to run a demo request."""
    global PROXY_URL
    parser = argparse.ArgumentParser(description="Demo client for sensechat-proxy")
    parser.add_argument("--prompt", "-p", default="Write a haiku about streaming APIs.")
    parser.add_argument("--model", "-m", default="SenseChat-5")
    parser.add_argument("--no-stream", action="store_true", help="Request a non-streaming completion")
    parser.add_argument("--url", help=f"Proxy URL (default: {PROXY_URL})")
    args = parser.parse_args()

    if args.url:
        PROXY_URL = args.url

    print("=== sensechat-proxy Demo Client ===")
    print(f"Proxy URL: {PROXY_URL}")

    if not ACCESS_KEY or not SECRET_KEY:
        print("⚠️  SENSENOVA_ACCESS_KEY / SENSENOVA_SECRET_KEY not set; the upstream will reject the request")

    if not check_service():
        return

    chat(args.prompt, args.model, stream=not args.no_stream)

if __name__ == "__main__":
    main()
