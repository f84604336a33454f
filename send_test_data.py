#!/usr/bin/env python3
"""
Temp Station Test Data Sender (Python)
Giả lập ESP8266: gửi nhiệt độ và lượt kết nối captive portal lên backend
"""

import argparse
import random
import sys
import time

import requests

# Giống firmware: số lần thử lại khi HTTP lỗi
MAX_HTTP_RETRIES = 2


def build_simple_payload(temperature):
    """Payload đơn: {"temperature": 20.5}"""
    return {"temperature": round(float(temperature), 2)}


def build_batch_payload(temperatures, interval=60, now=None):
    """
    Payload batch giống firmware: timestamp là lúc đo mẫu đầu tiên,
    mỗi mẫu sau cách mẫu trước `interval` giây.
    """
    now = int(now if now is not None else time.time())
    start = now - (len(temperatures) - 1) * interval
    return {
        "timestamp": start,
        "samples": [
            {"temp": round(float(t), 2), "offset": i * interval}
            for i, t in enumerate(temperatures)
        ],
    }


def random_mac(rng=random):
    return ":".join(f"{rng.randint(0, 255):02X}" for _ in range(6))


def build_users_payload(count, now=None, rng=random):
    """Batch visitor ngẫu nhiên, một nửa có email, một phần ba có số điện thoại."""
    now = int(now if now is not None else time.time())
    users = []
    for i in range(count):
        user = {
            "mac": random_mac(rng),
            "device": f"Phone-{i + 1}",
            "connect_time": now - rng.randint(0, 3600),
            "duration": rng.randint(0, 1800),
        }
        if i % 2 == 0:
            user["email"] = f"guest{i + 1}@example.com"
        if i % 3 == 0:
            user["phone"] = f"090{rng.randint(1000000, 9999999)}"
        users.append(user)
    return {"users": users}


def simulate_temperatures(count, base=22.0, rng=random):
    return [base + rng.uniform(-1.5, 1.5) for _ in range(count)]


def post_json(url, payload, retries=MAX_HTTP_RETRIES, timeout=10):
    """
    POST payload lên server, thử lại tối đa `retries` lần nếu lỗi.

    Returns:
        dict | None: JSON response nếu status == "success", ngược lại None
    """
    for attempt in range(1, retries + 2):
        try:
            response = requests.post(url, json=payload, timeout=timeout)
            body = response.json()
            if response.status_code == 200 and body.get("status") == "success":
                return body
            print(f"⚠️ Attempt {attempt}: HTTP {response.status_code} {body.get('message', '')}")
        except requests.exceptions.RequestException as e:
            print(f"⚠️ Attempt {attempt}: {e}")
        except ValueError:
            print(f"⚠️ Attempt {attempt}: response is not JSON")
    return None


def main(argv=None):
    parser = argparse.ArgumentParser(description='Gửi dữ liệu giả lập ESP8266 lên Temp Station backend')
    parser.add_argument('server_url', help='URL backend server (ví dụ: http://localhost:8000)')
    parser.add_argument('mode', choices=['simple', 'batch', 'users'], help='Loại payload')
    parser.add_argument('--count', type=int, default=10, help='Số mẫu/visitor (default: 10)')
    parser.add_argument('--interval', type=int, default=60, help='Khoảng cách giữa các mẫu batch, giây (default: 60)')
    parser.add_argument('--base-temp', type=float, default=22.0, help='Nhiệt độ trung bình (default: 22.0)')
    args = parser.parse_args(argv)

    server_url = args.server_url.rstrip('/')
    if args.mode == 'simple':
        url = f"{server_url}/api/receive"
        payload = build_simple_payload(simulate_temperatures(1, args.base_temp)[0])
    elif args.mode == 'batch':
        url = f"{server_url}/api/receive"
        payload = build_batch_payload(simulate_temperatures(args.count, args.base_temp), args.interval)
    else:
        url = f"{server_url}/api/receive_user"
        payload = build_users_payload(args.count)

    print(f"🌐 Server URL: {url}")
    print(f"📦 Mode: {args.mode}")

    result = post_json(url, payload)
    if result is None:
        print("❌ Gửi dữ liệu thất bại")
        return 1

    print(f"✅ {result.get('message')}")
    if 'total_records' in result:
        print(f"📊 Total records: {result['total_records']}")
    if 'total_users' in result:
        print(f"📊 Total users: {result['total_users']}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
