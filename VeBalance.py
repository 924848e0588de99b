import streamlit as st

st.set_page_config(
    page_title="VeBalance Ledger Simulation",
    layout="wide",
)

st.markdown("""
# VeBalance Ledger Overview

This app drives the ve-balance accounting engine with a randomized population of lockers and delegates and
charts how voting power is attributed between personal and delegated pockets over time.

## Core Components

### 1. Decay Functions
Every lock turns its principal into a linearly decaying voting-power curve:

- **Slope**: principal / max lock duration (the same denominator for every lock)
- **Bias**: slope × expiry, i.e. the curve is anchored at absolute time zero
- **Voting power at t**: max(0, bias − slope · t)

Two locks with the same principal and expiry have identical curves, whenever they were created.

### 2. Aggregates
Curves add componentwise, so the ledger keeps one running {bias, slope} per pocket:

- **Global**: every lock
- **Personal**: locks an address holds for itself
- **Delegated**: locks other addresses delegated to it
- **Pair**: the share one delegator contributes to one delegate

Conservation: Global = Σ Personal + Σ Delegated at every settled epoch boundary.

### 3. Epochs and Settlement
Expiries are epoch boundaries. Settling an aggregate walks it forward one epoch at a time, dropping the slope of locks
that expire at each boundary and applying the pending deltas booked for it. The first time the global aggregate crosses
a boundary, the total supply for the epoch that just ended is frozen.

### 4. Delegation Lag
Delegating, switching or undelegating never moves voting power mid-epoch: the current holder keeps it until the next
boundary, where a queued subtraction and addition swap it over.

### 5. Forward-Decay Benchmarking
Vote weight for epoch E is read at the end of E. A lock's last usable epoch is therefore the one before its expiry.

## Simulation Flow

For each epoch, the following steps are taken:

1. **Unlocks** – expired locks release their principal
2. **Locking** – a Poisson number of new locks with lognormal principal and random expiry
3. **Delegation** – random delegate, switch and undelegate actions (rejected actions are counted, not retried)
4. **Increases** – random amount and duration increases
5. **Settlement and Metrics** – every aggregate is settled and the epoch is recorded

Open the **Simulation** page in the sidebar to run it.
""")
