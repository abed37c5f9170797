"""Browser process management and Playwright sessions over CDP.

``binary`` / ``ports`` / ``process`` / ``launcher`` spawn and tear down the
browser; ``session`` connects to it; ``bot_protection`` gates page readiness
on challenge interstitials clearing.
"""
