"""Example: follow a build log and report request failures through the error sink."""

import asyncio
import sys

from drone.sdk import DroneClient, HTTPError, load_dotenv_for_sdk


def report(error: HTTPError) -> None:
    if error.status == 401:
        print("Session expired; set DRONE_TOKEN again", file=sys.stderr)


async def main(owner: str, repo: str, number: int) -> None:
    load_dotenv_for_sdk()

    async with DroneClient.from_environ(on_error=report) as client:
        build = await client.get_build(owner, repo, number)
        print(f"Build #{build['number']} is {build['status']}")

        for proc in build.get("procs", []):
            for child in proc.get("children", []):
                print(f"--- {child['name']}")
                subscription = client.stream(
                    owner, repo, number, child["pid"], lambda line: print(line["out"], end="")
                )
                await subscription.wait()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1], sys.argv[2], int(sys.argv[3])))
