# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.
