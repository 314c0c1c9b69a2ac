"""
In-page JavaScript

The extraction and probe scripts evaluated in TCGplayer pages. These are tied
to the site's markup and are the first thing to update when it changes.
"""

# Returns [{title, price, url, setVariant, rarity}] for every product tile that
# has a title and a price. Filtering and selection happen in Python.
SEARCH_RESULTS_SCRIPT = r"""
() => {
    const products = [];
    const cards = document.querySelectorAll('.product-card__product');

    cards.forEach((card) => {
        const titleElement = card.querySelector('.product-card__title')
            || card.querySelector('[class*="title"]')
            || card.querySelector('[class*="name"]');
        const priceElement = card.querySelector('.inventory__price-with-shipping')
            || card.querySelector('[class*="price"]');
        const linkElement = card.querySelector('a[href*="/product/"]')
            || card.closest('a[href*="/product/"]');
        const setVariantElement = card.querySelector('.product-card__set-name__variant');
        const rarityElement = card.querySelector('.product-card__rarity__variant');

        if (!titleElement || !priceElement) {
            return;
        }

        const title = (titleElement.textContent || '').trim();
        const price = (priceElement.textContent || '').trim();
        if (!title || !price) {
            return;
        }

        products.push({
            title: title,
            price: price,
            url: linkElement ? linkElement.href : null,
            setVariant: setVariantElement ? (setVariantElement.textContent || '').trim() : '',
            rarity: rarityElement ? (rarityElement.textContent || '').trim() : ''
        });
    });

    return products;
}
"""

# Returns the listings rendered on a condition-filtered product page. Only the
# first listing is priced; the rest are kept for diagnostics.
LISTINGS_SCRIPT = r"""
() => {
    const items = document.querySelectorAll('.listing-item');
    const listings = [];

    items.forEach((item, index) => {
        const basePrice = item.querySelector('.listing-item__listing-data__info__price');
        const shipping = item.querySelector('.shipping-messages__price');

        listings.push({
            index: index,
            basePrice: basePrice ? { text: basePrice.textContent.trim() } : null,
            shipping: shipping ? { text: shipping.textContent.trim() } : null
        });
    });

    let headerText = null;
    const headers = document.querySelectorAll('h1, h2, h3, h4, span, div');
    for (const element of headers) {
        const text = (element.textContent || '').trim();
        if (/^[0-9]+\s+listings?$/i.test(text)) {
            headerText = text;
            break;
        }
    }

    return {
        count: listings.length,
        headerText: headerText,
        listings: listings,
        url: window.location.href
    };
}
"""

# Looks for rate-limit messages and error page containers.
RATE_LIMIT_CHECK_SCRIPT = r"""
() => {
    const errorElements = Array.from(document.querySelectorAll(
        '.error-message, .rate-limit-message, [class*="error"], [class*="rate-limit"]'
    ));

    const hasRateLimit = errorElements.some((element) => {
        const text = (element.textContent || '').toLowerCase();
        return text.includes('rate limit') || text.includes('too many requests');
    });

    const hasErrorPage = document.querySelector(
        '.error-page, .uhoh-page, [class*="error-page"]'
    ) !== null;

    return {
        hasRateLimit: hasRateLimit,
        hasErrorPage: hasErrorPage,
        currentUrl: window.location.href,
        errorMessages: errorElements
            .map((element) => (element.textContent || '').trim())
            .filter((text) => text.length > 0)
            .slice(0, 10)
    };
}
"""

# Installed as a context init script: stops client-side routing and link
# clicks from taking the page to the blocked page. The pattern is filled in
# by the session manager.
REDIRECT_PREVENTION_SCRIPT_TEMPLATE = r"""
(() => {
    const blockedPattern = %(pattern)s;
    const isBlocked = (url) => typeof url === 'string' && url.includes(blockedPattern);

    const originalPushState = history.pushState;
    const originalReplaceState = history.replaceState;

    history.pushState = function (state, title, url) {
        if (isBlocked(url)) {
            console.log('Prevented history push to error page');
            return;
        }
        return originalPushState.apply(this, arguments);
    };

    history.replaceState = function (state, title, url) {
        if (isBlocked(url)) {
            console.log('Prevented history replace to error page');
            return;
        }
        return originalReplaceState.apply(this, arguments);
    };

    document.addEventListener('click', (event) => {
        const link = event.target && event.target.closest ? event.target.closest('a') : null;
        if (link && isBlocked(link.href)) {
            console.log('Prevented click navigation to error page');
            event.preventDefault();
            event.stopPropagation();
        }
    }, true);
})();
"""
