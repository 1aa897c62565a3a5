# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Allow running the console as: python -m autodoor.console"""

from .cli import main

if __name__ == "__main__":
    main()
