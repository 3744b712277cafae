"""
Bundled example programs, addressable as ``example:NAME`` on the command line.
"""

from __future__ import annotations

HELLO_WORLD = r'''64+"!dlroW ,olleH">:#,_@
'''

# Prints the primes below 80; the bottom row is the sieve's scratch space.
ERATOSTHENES = r'''2>:3g" "-!v\  g30          <
 |!`"O":+1_:.:03p>03g+:"O"`|
 @               ^  p3\" ":<
2 234567890123456789012345678901234567890123456789012345678901234567890123456789
'''

# Reads n with & and prints n!
FACTORIAL = r'''&>:1-:v v *_$.@
 ^    _$>\:^
'''

# Prints its own source; reads each cell back with g and skips the
# interleaved instructions with #.
QUINE = r'''01->1# +# :# 0# g# ,# :# 5# 8# *# 4# +# -# _@'''

# ? sends the IP left, right or down to print 1, 2 or 3; up loops back to ?.
RNG = r'''   v

@.1?2.@
   3
   .
   @
'''

EXAMPLES: dict[str, str] = {
    "eratosthenes": ERATOSTHENES,
    "factorial": FACTORIAL,
    "hello_world": HELLO_WORLD,
    "quine": QUINE,
    "rng": RNG,
}


def get_example(name: str) -> str:
    try:
        return EXAMPLES[name]
    except KeyError:
        known = ", ".join(sorted(EXAMPLES))
        raise KeyError(f"no example named {name!r} (known: {known})") from None
