from typing import Dict, List, Optional, Sequence, Tuple

from drafting.models import PartyInfo, SelectionCriteria, ServiceItem
from tools.logger import setup_logger
from utils.timeline import parse_duration_to_days

logger = setup_logger("criteria-analyzer")


# Ordered: first match wins
SERVICE_TYPE_KEYWORDS: List[Tuple[str, Sequence[str]]] = [
    ("development", ["개발", "웹사이트", "앱", "쇼피파이", "shopify", "코딩", "프로그래밍", "api"]),
    ("design", ["디자인", "로고", "브랜딩", "ui", "ux", "그래픽", "일러스트", "포토샵"]),
    ("marketing", ["마케팅", "광고", "sns", "소셜", "인스타그램", "페이스북", "블로그", "seo"]),
    ("content", ["콘텐츠", "글쓰기", "번역", "영상", "촬영", "편집", "카피"]),
    ("consulting", ["컨설팅", "자문", "분석", "전략", "기획", "연구", "조사"]),
    ("education", ["교육", "강의", "수업", "트레이닝", "워크샵", "세미나"]),
    ("maintenance", ["유지보수", "관리", "운영", "업데이트", "수정", "개선"]),
]

INDUSTRY_KEYWORDS: List[Tuple[str, Sequence[str]]] = [
    ("retail", ["쇼핑몰", "온라인스토어", "이커머스", "판매", "소매"]),
    ("restaurant", ["음식점", "카페", "레스토랑", "요식업", "배달"]),
    ("beauty", ["미용", "뷰티", "헤어", "네일", "에스테틱", "스킨케어"]),
    ("fitness", ["헬스", "피트니스", "요가", "필라테스", "운동"]),
    ("education", ["학원", "교육", "어학", "과외", "학습"]),
    ("medical", ["병원", "의료", "치과", "한의원", "약국"]),
    ("finance", ["금융", "보험", "투자", "대출", "부동산"]),
    ("technology", ["it", "테크", "소프트웨어", "앱", "개발"]),
]

SERVICE_TYPE_TO_INDUSTRY: Dict[str, str] = {
    "development": "technology",
    "design": "creative",
    "marketing": "marketing",
    "consulting": "business",
}

COMPLEX_SERVICE_KEYWORDS = ("커스텀", "맞춤", "고급")
COMPLEX_DESCRIPTION_LENGTH = 100

DETAILED_SCORE = 9
STANDARD_SCORE = 6


class CriteriaAnalyzer:
    """
    Derives selection criteria (service type, industry, complexity) from a
    quote's services, amount and duration.

    Pure keyword classification; no external calls.

    Example:
        >>> analyzer = CriteriaAnalyzer()
        >>> services = [ServiceItem(name="쇼핑몰 웹사이트 개발", price=55_000_000)]
        >>> analyzer.analyze(services, 55_000_000, "6개월").complexity_tier
        'standard'
    """

    # =========================================================
    # Public API
    # =========================================================

    def analyze(
        self,
        services: List[ServiceItem],
        amount: float,
        duration: Optional[str],
        client: Optional[PartyInfo] = None,
    ) -> SelectionCriteria:
        service_type = self.analyze_service_type(services)
        industry = self.infer_industry(service_type, client)
        duration_days = parse_duration_to_days(duration)
        score = self.complexity_score(services, amount, duration_days)
        tier = self.tier_for_score(score)

        logger.info(
            f"Criteria | type={service_type} industry={industry} "
            f"score={score} tier={tier} days={duration_days}"
        )

        return SelectionCriteria(
            service_type=service_type,
            industry=industry,
            complexity_tier=tier,
            complexity_score=score,
            amount=amount or 0,
            duration_days=duration_days,
        )

    def recommend_complexity(
        self,
        services: List[ServiceItem],
        amount: float,
        duration: Optional[str],
    ) -> str:
        """
        Contract length suggestion when the caller does not pick one.
        """
        score = self.complexity_score(services, amount, parse_duration_to_days(duration))
        return self.tier_for_score(score)

    # =========================================================
    # Classification
    # =========================================================

    def analyze_service_type(self, services: List[ServiceItem]) -> str:
        text = " ".join(f"{s.name} {s.description}" for s in services).lower()
        for service_type, keywords in SERVICE_TYPE_KEYWORDS:
            if any(k in text for k in keywords):
                return service_type
        return "general"

    def infer_industry(self, service_type: str, client: Optional[PartyInfo] = None) -> str:
        client_info = ""
        if client is not None:
            client_info = client.company or client.service_category
        text = f"{service_type} {client_info}".lower()

        for industry, keywords in INDUSTRY_KEYWORDS:
            if any(k in text for k in keywords):
                return industry

        return SERVICE_TYPE_TO_INDUSTRY.get(service_type, "general")

    # =========================================================
    # Complexity
    # =========================================================

    def complexity_score(
        self,
        services: List[ServiceItem],
        amount: float,
        duration_days: int,
    ) -> int:
        score = 0

        count = len(services)
        if count >= 5:
            score += 2
        elif count >= 3:
            score += 1

        amount = amount or 0
        if amount >= 50_000_000:
            score += 4
        elif amount >= 10_000_000:
            score += 3
        elif amount >= 3_000_000:
            score += 2
        else:
            score += 1

        if duration_days >= 180:
            score += 2
        elif duration_days >= 60:
            score += 1

        if self.has_complex_service(services):
            score += 2

        return score

    def has_complex_service(self, services: List[ServiceItem]) -> bool:
        return any(
            len(s.description) > COMPLEX_DESCRIPTION_LENGTH
            or any(k in s.description for k in COMPLEX_SERVICE_KEYWORDS)
            for s in services
        )

    def tier_for_score(self, score: int) -> str:
        if score >= DETAILED_SCORE:
            return "detailed"
        if score >= STANDARD_SCORE:
            return "standard"
        return "simple"
