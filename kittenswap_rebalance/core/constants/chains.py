CHAIN_ID_HYPEREVM = 999

CHAIN_EXPLORER_URLS: dict[int, str] = {
    CHAIN_ID_HYPEREVM: "https://hyperevmscan.io/",
}
