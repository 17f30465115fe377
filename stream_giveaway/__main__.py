"""Entry point for running the operator bot via python -m stream_giveaway"""

import asyncio

from stream_giveaway.runtime import main

if __name__ == "__main__":
    asyncio.run(main())
