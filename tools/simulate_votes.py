import random
import sys
import time

import httpx


def simulate(
    num_votes: int = 5,
    wallet: str = "0x" + "ab" * 20,
    base_url: str = "http://localhost:8000",
) -> None:
    headers = {"X-Wallet-Address": wallet}

    with httpx.Client(base_url=base_url, headers=headers, timeout=60) as client:
        try:
            _ = client.post("/encryption/initialize").raise_for_status()
        except httpx.HTTPError as e:
            print(f"Error initializing encryption at {base_url}: {e}")
            return

        created: list[tuple[str, int]] = []
        for i in range(num_votes):
            value = random.randint(0, 100)
            payload = {
                "title": f"Simulated motion {i + 1}",
                "description": "Generated by the vote simulator",
                "vote_value": value,
            }
            try:
                response = client.post("/votes", json=payload)
                _ = response.raise_for_status()
                record = response.json()
                if record:
                    created.append((record["id"], value))
                    print(f"Vote {i + 1}/{num_votes}: created {record['id']} ({value})")
            except httpx.HTTPError as e:
                print(f"Error creating vote {i + 1}: {e}")

            # Ids are millisecond timestamps; keep them apart.
            time.sleep(0.01)

        for vote_id, expected in created:
            try:
                response = client.post(f"/votes/{vote_id}/reveal")
                _ = response.raise_for_status()
                revealed = response.json()["revealed_value"]
                marker = "ok" if revealed == expected else "MISMATCH"
                print(f"Revealed {vote_id}: {revealed} [{marker}]")
            except httpx.HTTPError as e:
                print(f"Error revealing {vote_id}: {e}")

        stats = client.get("/votes/dashboard").json()["stats"]
        print(f"Dashboard: {stats}")


if __name__ == "__main__":
    try:
        count = int(sys.argv[1]) if len(sys.argv) > 1 else 5
    except ValueError:
        print("Usage: python tools/simulate_votes.py [num_votes]")
        sys.exit(1)
    simulate(count)
